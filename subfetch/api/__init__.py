"""HTTP API for subfetch"""
