"""Chunked transfer service: sessions, chunk receipt, assembly and reaping"""
