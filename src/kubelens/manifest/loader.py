#!/usr/bin/env python3
"""
KUBELENS LOADER - Manifest Intake
---------------------------------
Turns raw manifest text into plain Python documents. Multi-document
streams are split on '---' boundaries; every unit is kept, including
empty ones, so document indexes stay aligned with the source text.

Author: KubeLens Team
Date: 2026-01-16
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from kubelens.core.models import ParseError
from kubelens.manifest.shapes import detach

logger = logging.getLogger("kubelens.loader")


@dataclass
class ParseResult:
    """Outcome of a successful parse."""
    documents: List[Any] = field(default_factory=list)
    is_multi_doc: bool = False

    @property
    def data(self) -> Any:
        """The value scanners and fixers expect: the list for multi-doc input, else the lone document."""
        if self.is_multi_doc:
            return self.documents
        return self.documents[0] if self.documents else None


class KubeLoader:
    """
    Safe-mode YAML reader. Produces plain dicts/lists/scalars only,
    which keeps deep copies and structural equality cheap and predictable.
    """

    def __init__(self):
        self.yaml = YAML(typ="safe", pure=True)

    def parse(self, text: str) -> ParseResult:
        """
        Parses one or more YAML documents.

        Raises:
            ParseError: on any syntax error. Nothing is returned in that case.
        """
        if text is None:
            text = ""
        # Strip a UTF-8 BOM left by editors on Windows
        if text.startswith("\ufeff"):
            text = text[1:]

        try:
            # load_all is lazy; materialize inside the guard
            documents = list(self.yaml.load_all(text))
        except YAMLError as e:
            logger.debug(f"YAML syntax error: {e}")
            raise ParseError(str(e)) from e

        # Anchors and aliases share one object; give every alias its own subtree
        try:
            documents = [detach(doc) for doc in documents]
        except ValueError as e:
            raise ParseError(str(e)) from e

        return ParseResult(documents=documents, is_multi_doc=len(documents) > 1)


_default_loader = KubeLoader()


def parse(text: str) -> ParseResult:
    """Module-level convenience wrapper around KubeLoader.parse."""
    return _default_loader.parse(text)
