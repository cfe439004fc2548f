from .memory import Memory, MEMORY_SIZE

__all__ = ['Memory', 'MEMORY_SIZE']
