"""
Tests for PromptManager and the packaged extraction prompt
"""

import pytest
import yaml

from fuelex.exceptions import ConfigurationError
from fuelex.processors.llm.prompt_manager import PromptManager


class TestPromptManager:

    def test_packaged_prompt_is_listed(self):
        assert 'fuel_invoice_extraction' in PromptManager().list_prompts()

    def test_system_prompt_renders_registrations_and_hint(self):
        prompt = PromptManager().get_system_prompt(
            'fuel_invoice_extraction',
            known_registrations=['AB12 CDE', 'XY99 ZZZ'],
            date_hint='2025-10-06',
            currency_symbol='£'
        )

        assert 'AB12 CDE, XY99 ZZZ' in prompt
        assert '2025-10-06' in prompt
        assert 'PPL' in prompt
        assert '20% VAT' in prompt

    def test_optional_sections_are_omitted(self):
        prompt = PromptManager().get_system_prompt(
            'fuel_invoice_extraction', known_registrations=[], date_hint=None, currency_symbol='£'
        )

        assert 'known to this fleet' not in prompt
        assert 'probably dated' not in prompt

    def test_user_prompt(self):
        prompt = PromptManager().get_user_prompt(
            'fuel_invoice_extraction', source_name='ukfuels.pdf', content='Transaction Detail'
        )

        assert '(ukfuels.pdf)' in prompt
        assert prompt.endswith('Transaction Detail')

    def test_custom_directory_and_cache(self, tmp_path):
        (tmp_path / 'custom.yaml').write_text(yaml.safe_dump({
            'system_prompt': 'Extract for {{ who }}',
            'user_prompt_template': 'Process: {{ content }}',
        }))
        manager = PromptManager(tmp_path)

        assert manager.get_system_prompt('custom', who='fleet') == 'Extract for fleet'
        assert manager.load_prompt('custom') is manager.load_prompt('custom')

    def test_missing_prompt(self, tmp_path):
        with pytest.raises(ConfigurationError):
            PromptManager(tmp_path).load_prompt('absent')

    def test_missing_template_key(self):
        with pytest.raises(ConfigurationError):
            PromptManager().render('fuel_invoice_extraction', 'no_such_template')
