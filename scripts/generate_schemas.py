"""Generate JSON schemas from Pydantic models and save to schemas/ directory."""

import json
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from protocompat.contracts import CheckResult
from protocompat.kernel.config import CheckerConfig
from protocompat.kernel.model import SchemaSnapshot


SCHEMAS = {
    "schema_snapshot.schema.json": SchemaSnapshot,
    "checker_config.schema.json": CheckerConfig,
    "check_result.schema.json": CheckResult,
}


def generate_schemas():
    """Generate JSON schemas for snapshot input, configuration and result models."""
    schemas_dir = Path(__file__).parent.parent / "schemas"
    schemas_dir.mkdir(exist_ok=True)

    for filename, model in SCHEMAS.items():
        schema = model.model_json_schema(by_alias=True)
        schema_path = schemas_dir / filename
        with open(schema_path, 'w', encoding='utf-8') as f:
            json.dump(schema, f, indent=2, ensure_ascii=False, sort_keys=True)
        print(f"Generated: {schema_path}")

    print("\nSchema generation complete!")


if __name__ == "__main__":
    generate_schemas()
