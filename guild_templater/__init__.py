#!/usr/bin/env python3
"""
Discord server template executor
"""

__version__ = "0.1.0"

# Import the main classes and functions for easier access
from guild_templater.core.config import load_config
from guild_templater.core.customization import Customization, resolve_plan
from guild_templater.core.orchestrator import (
    ExecutionOptions,
    TemplateOrchestrator,
    execute_template,
    preview_template_execution,
)

# Import key service functions
from guild_templater.services.templates import get_template, list_templates
