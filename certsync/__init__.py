"""Certificate lifecycle orchestration for multi-tenant hosting platforms"""
