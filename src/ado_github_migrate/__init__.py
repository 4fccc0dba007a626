"""Azure DevOps to GitHub Migration Tool

Drives repository and organization migrations from Azure DevOps to GitHub
to completion, and rewires, tests and restores Azure Pipelines so they can
build from the migrated GitHub repositories.
"""

__version__ = '0.1.0'
__author__ = 'ADO Migration Team'
__email__ = 'team@example.com'

from .cli import main

__all__ = ['main']
