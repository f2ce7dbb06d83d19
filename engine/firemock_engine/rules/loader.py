"""
Loading of rules and seed-data documents.

Documents may be written in JSON (the format of database.rules.json) or
YAML. JSON is a subset of YAML, so both go through ``yaml.safe_load``.

Example rules.yaml:
    rules:
      users:
        $uid:
          .read: "auth != null"
          .write: "auth.uid === $uid"
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from ..errors import RulesSyntaxError
from .ruleset import Ruleset

logger = logging.getLogger(__name__)


def load_document(path: str | Path) -> Any:
    """Read a JSON or YAML document.

    Args:
        path: File to read

    Returns:
        Parsed document (None for an empty file)

    Raises:
        FileNotFoundError: If the file does not exist
        yaml.YAMLError: If the file is neither valid JSON nor YAML
    """
    path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        document = yaml.safe_load(f)
    logger.debug(f"Loaded document {path}")
    return document


def load_rules(path: str | Path) -> Ruleset:
    """Read and compile a rules document.

    Raises:
        RulesSyntaxError: If the file does not hold a valid rules document
    """
    try:
        document = load_document(path)
    except yaml.YAMLError as e:
        raise RulesSyntaxError(f"Cannot parse rules file {path}: {e}") from e
    return Ruleset.from_document(document)
