from fuelex.processors.base import BaseProcessor, ProcessingResult

__all__ = ['BaseProcessor', 'ProcessingResult']
