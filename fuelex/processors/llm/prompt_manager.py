"""
Prompt Manager

Extraction prompts live in YAML files next to the package so wording can
change without touching code. Every template is rendered with Jinja2.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from jinja2 import Template

from fuelex.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_PROMPTS_DIR = Path(__file__).parent.parent.parent / "prompts"


class PromptManager:
    """Loads and renders YAML prompt files"""

    def __init__(self, prompts_dir: Optional[Union[str, Path]] = None):
        self.prompts_dir = Path(prompts_dir) if prompts_dir else DEFAULT_PROMPTS_DIR
        self._prompts_cache: Dict[str, Dict[str, Any]] = {}

    def load_prompt(self, prompt_name: str, use_cache: bool = True) -> Dict[str, Any]:
        """
        Read `<prompts_dir>/<prompt_name>.yaml`

        Args:
            prompt_name: File stem
            use_cache: Reuse a previously loaded file

        Returns:
            Mapping of template key to template text; always has 'system_prompt'

        Raises:
            ConfigurationError: if the file is missing or malformed
        """
        cached = self._prompts_cache.get(prompt_name)
        if use_cache and cached is not None:
            return cached

        prompt_file = self.prompts_dir / f"{prompt_name}.yaml"
        if not prompt_file.exists():
            raise ConfigurationError(f"Prompt file not found: {prompt_file}")

        try:
            data = yaml.safe_load(prompt_file.read_text(encoding='utf-8'))
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Could not read prompt {prompt_name}: {e}")
            raise ConfigurationError(f"Could not read prompt {prompt_name}: {e}") from e

        if not isinstance(data, dict) or 'system_prompt' not in data:
            raise ConfigurationError(f"Prompt {prompt_name} must define system_prompt")

        logger.debug(f"Loaded prompt {prompt_name} from {prompt_file}")
        if use_cache:
            self._prompts_cache[prompt_name] = data
        return data

    def render(self, prompt_name: str, template_key: str, **kwargs) -> str:
        """Render one named template from a prompt file"""
        data = self.load_prompt(prompt_name)
        if template_key not in data:
            raise ConfigurationError(f"Prompt {prompt_name} has no '{template_key}' template")
        return self._render(data[template_key], kwargs)

    def get_system_prompt(self, prompt_name: str, **kwargs) -> str:
        return self.render(prompt_name, 'system_prompt', **kwargs)

    def get_user_prompt(self, prompt_name: str, **kwargs) -> str:
        # Prompt files without a user template just pass the content through
        template = self.load_prompt(prompt_name).get('user_prompt_template', '{{ content }}')
        return self._render(template, kwargs)

    @staticmethod
    def _render(template: str, variables: Dict[str, Any]) -> str:
        return Template(template).render(**variables).strip()

    def clear_cache(self) -> None:
        self._prompts_cache.clear()

    def list_prompts(self) -> List[str]:
        if not self.prompts_dir.exists():
            return []
        return sorted(path.stem for path in self.prompts_dir.glob("*.yaml"))
