"""
LLM access for fuelex processors
"""

from .openai_service import OpenAILLMService, clean_json_response, parse_json_loose
from .prompt_manager import PromptManager

__all__ = [
    'OpenAILLMService',
    'PromptManager',
    'clean_json_response',
    'parse_json_loose'
]
