#!/usr/bin/env python3
"""
KUBELENS EXPORTER - Deterministic Serialization
-----------------------------------------------
Converts documents back to YAML text with a stable layout: 2-space
indentation, block sequences indented under their parent key, and every
string value double-quoted. Same input, same bytes.

Author: KubeLens Team
Date: 2026-01-16
"""

import io
from typing import Any, List

from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap, CommentedSeq
from ruamel.yaml.scalarstring import DoubleQuotedScalarString


class KubeExporter:
    """
    The Reconstructor: renders documents produced by the loader or
    the ShieldEngine back into manifest text.
    """

    def __init__(self, indent: int = 2, force_quote_strings: bool = True):
        self.indent = indent
        self.force_quote_strings = force_quote_strings
        self.yaml = YAML(typ="rt")
        # Sequences sit one indent level under their parent key
        self.yaml.indent(mapping=indent, sequence=indent * 2, offset=indent)
        self.yaml.width = 4096
        self.yaml.default_flow_style = False

    def _prepare(self, data: Any) -> Any:
        """
        Rebuilds the tree with quoted string values. Mapping keys stay plain.
        The input is never mutated.
        """
        if isinstance(data, dict):
            # CommentedMap keeps insertion order on output
            prepared = CommentedMap()
            for key, value in data.items():
                prepared[key] = self._prepare(value)
            return prepared
        if isinstance(data, list):
            return CommentedSeq(self._prepare(item) for item in data)
        if isinstance(data, str) and self.force_quote_strings:
            return DoubleQuotedScalarString(data)
        return data

    def serialize(self, document: Any) -> str:
        """Serializes a single document."""
        stream = io.StringIO()
        self.yaml.dump(self._prepare(document), stream)
        return stream.getvalue()

    def serialize_set(self, documents: List[Any]) -> str:
        """
        Serializes a document set. Units are joined with '---' in their
        original order; empty units are kept so indexes survive a round trip.
        """
        return "---\n".join(self.serialize(doc) for doc in documents)

    def export(self, data: Any, is_multi_doc: bool) -> str:
        if is_multi_doc:
            return self.serialize_set(data)
        return self.serialize(data)


_default_exporter = KubeExporter()


def serialize(document: Any, force_quote_strings: bool = True, indent: int = 2) -> str:
    if force_quote_strings and indent == 2:
        return _default_exporter.serialize(document)
    return KubeExporter(indent=indent, force_quote_strings=force_quote_strings).serialize(document)


def serialize_set(documents: List[Any]) -> str:
    return _default_exporter.serialize_set(documents)
