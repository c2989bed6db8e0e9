"""
Worker module.
Contains the job worker loop and the handler registry.
"""
