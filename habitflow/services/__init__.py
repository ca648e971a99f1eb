"""Application services wired together by ServiceContainer"""
from habitflow.services.container import ServiceContainer

__all__ = ["ServiceContainer"]
