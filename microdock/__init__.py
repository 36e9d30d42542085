"""
microdock: Docker lifecycle management for microservice projects
"""
__version__ = "1.0.0"
