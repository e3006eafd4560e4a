#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class LoadedConfig:
    """
    Thin wrapper over loaded JSON.

    Example (output):
        LoadedConfig(path="/etc/falnet-nerves-hub.conf", raw={...full config dict...})
    """
    path: str
    raw: Dict[str, Any]


def load_config(path: Union[str, Path]) -> LoadedConfig:
    """
    Load JSON config from disk.

    Input:
      path: path to JSON file.

    Output:
      LoadedConfig with .raw containing parsed dict.
    """
    logger.debug("Reading configuration file %r", str(path))
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Config root must be a JSON object: {path}")
    return LoadedConfig(path=str(path), raw=data)


def load_model(path: Union[str, Path], model: Type[ModelT]) -> ModelT:
    """
    Load JSON config from disk and validate it against a pydantic model.

    Example:
      cfg = load_model("/etc/falnet-nerves-hub.conf", HubConfig)
    """
    loaded = load_config(path)
    try:
        return model.model_validate(loaded.raw)
    except ValidationError as e:
        logger.error("Invalid configuration in %r: %s", loaded.path, e)
        raise
