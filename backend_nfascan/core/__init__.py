"""
Core utilities: exceptions shared by the provider, storage and sync layers.
"""
