# File: schemaforge/generators/__init__.py
"""
NexaFlow SchemaForge - Generators
===================================
One module per emitted artifact.  Each exposes a single stateless
``Generator`` subclass; :mod:`schemaforge.registry` decides the order they
run in and when they are skipped.
"""

from __future__ import annotations

from typing import List

from schemaforge.generators.api import ApiGenerator
from schemaforge.generators.base import Generator
from schemaforge.generators.client import ClientGenerator
from schemaforge.generators.docs import DocsGenerator
from schemaforge.generators.erd import ErdGenerator
from schemaforge.generators.hooks import HooksGenerator
from schemaforge.generators.i18n import I18nGenerator
from schemaforge.generators.package import PackageGenerator
from schemaforge.generators.seed import SeedGenerator
from schemaforge.generators.service import ServiceGenerator
from schemaforge.generators.storage import StorageGenerator
from schemaforge.generators.tests import TestsGenerator
from schemaforge.generators.validation import ValidationGenerator

__all__: List[str] = [
    "Generator",
    "PackageGenerator",
    "StorageGenerator",
    "ValidationGenerator",
    "ServiceGenerator",
    "ApiGenerator",
    "ClientGenerator",
    "HooksGenerator",
    "I18nGenerator",
    "TestsGenerator",
    "DocsGenerator",
    "ErdGenerator",
    "SeedGenerator",
]
