"""
Prompt Manager Service

Loads prompt templates from prompts.json and renders them with
``string.Template`` substitution. The file is re-read when its mtime
changes, so prompts can be tuned without a restart.
"""

import json
from pathlib import Path
from string import Template
from typing import Any, Dict, List, Optional


class PromptManager:
    """Read-only access to the prompts.json configuration"""

    def __init__(self, prompts_file: str = "prompts.json"):
        self.prompts_file = Path(prompts_file)

        self._prompts_cache = None
        self._file_mtime = None

        self.reload()

    def reload(self) -> None:
        """Reload prompts from file (hot-reload support)"""
        if not self.prompts_file.exists():
            raise FileNotFoundError(f"Prompts file not found: {self.prompts_file}")

        with open(self.prompts_file, 'r') as f:
            self._prompts_cache = json.load(f)

        self._file_mtime = self.prompts_file.stat().st_mtime

    def _check_reload(self) -> None:
        if self.prompts_file.exists():
            current_mtime = self.prompts_file.stat().st_mtime
            if current_mtime != self._file_mtime:
                self.reload()

    def get_prompt(self, prompt_name: str) -> Dict[str, Any]:
        """
        Get a specific prompt configuration

        Raises:
            KeyError: If prompt not found
        """
        self._check_reload()

        if prompt_name not in self._prompts_cache.get("prompts", {}):
            raise KeyError(f"Prompt not found: {prompt_name}")

        return self._prompts_cache["prompts"][prompt_name].copy()

    def render_prompt(self, prompt_name: str, variables: Dict[str, Any]) -> str:
        """
        Render a prompt template with variable substitution

        Example:
            >>> pm = get_prompt_manager()
            >>> rendered = pm.render_prompt("stance_scoring", {
            ...     "dimension_name": "feasibility",
            ...     "dimension_description": "Practical feasibility of implementation",
            ...     "scale_negative_label": "Not feasible",
            ...     "scale_positive_label": "Highly feasible",
            ...     "comment_text": "This could ship next quarter.",
            ... })
        """
        prompt_config = self.get_prompt(prompt_name)
        template = Template(prompt_config.get("template", ""))

        try:
            return template.substitute(variables)
        except KeyError as e:
            missing_var = str(e).strip("'")
            raise ValueError(
                f"Missing required variable '{missing_var}' for prompt '{prompt_name}'"
            )

    def get_prompt_metadata(self, prompt_name: str) -> Dict[str, Any]:
        """Prompt settings (system message, temperature, max_tokens) without the template"""
        prompt_config = self.get_prompt(prompt_name)
        defaults = self._prompts_cache.get("defaults", {})

        return {
            "description": prompt_config.get("description", ""),
            "system": prompt_config.get("system", ""),
            "temperature": prompt_config.get("temperature", defaults.get("default_temperature", 0.3)),
            "max_tokens": prompt_config.get("max_tokens", defaults.get("default_max_tokens", 1000)),
            "output_format": prompt_config.get("output_format", "json"),
        }

    def list_prompts(self) -> List[str]:
        self._check_reload()
        return list(self._prompts_cache.get("prompts", {}).keys())


_prompt_manager_instance: Optional[PromptManager] = None


def get_prompt_manager() -> PromptManager:
    """Get global PromptManager singleton"""
    global _prompt_manager_instance

    if _prompt_manager_instance is None:
        prompts_file = Path(__file__).parent.parent / "prompts.json"
        _prompt_manager_instance = PromptManager(prompts_file=str(prompts_file))

    return _prompt_manager_instance
