#!/usr/bin/env python3
"""
Generate JSON Schemas and YAML variants from the entity and request models.

Outputs under src/specs/:
 - schemas/*.json (and *.yaml)
 - entities.yaml (index of every generated schema)
"""
from __future__ import annotations

import json
import sys
from pathlib import Path

import yaml

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
SPECS = SRC / "specs"
SCHEMAS_DIR = SPECS / "schemas"

sys.path.insert(0, str(ROOT))

from src.specs.models import SCHEMA_MODELS  # noqa: E402


def write_json_yaml(obj: dict, json_path: Path) -> None:
    json_path.parent.mkdir(parents=True, exist_ok=True)
    with json_path.open("w", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, ensure_ascii=False)
    yaml_path = json_path.with_suffix(".yaml")
    with yaml_path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(obj, f, sort_keys=False)


def write_yaml(obj: dict, yaml_path: Path) -> None:
    yaml_path.parent.mkdir(parents=True, exist_ok=True)
    with yaml_path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(obj, f, sort_keys=False)


def generate_model_schemas(schemas_dir: Path = SCHEMAS_DIR) -> None:
    for filename, model in SCHEMA_MODELS.items():
        schema = model.model_json_schema()
        write_json_yaml(schema, schemas_dir / filename)


def generate_index(specs_dir: Path = SPECS) -> None:
    entries = [
        {"model": model.__name__, "schema": {"$ref": f"./schemas/{filename}"}}
        for filename, model in SCHEMA_MODELS.items()
    ]
    doc = {"kind": "entity-schemas", "version": "0.1.0", "schemas": entries}
    write_yaml(doc, specs_dir / "entities.yaml")


def main() -> None:
    generate_model_schemas()
    generate_index()
    print("Specs generated under src/specs/")


if __name__ == "__main__":
    main()
