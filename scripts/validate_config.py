#!/usr/bin/env python3
"""Configuration validation script."""

import sys
from pathlib import Path
from typing import List

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from profile_runner.config.loader import ConfigLoader
from profile_runner.config.validation import ConfigValidator, ValidationError


def validate_profile_config(loader: ConfigLoader, profile_id: str) -> List[ValidationError]:
    """Validate configuration for a specific profile."""
    config = loader.merge_config(profile_id)
    return ConfigValidator.validate_config(config)


def main():
    """Main validation function."""
    config_dir = Path(sys.argv[1]) if len(sys.argv) > 1 else project_root / "config"
    loader = ConfigLoader.create(config_dir)
    print(f"🔍 Validating profile runner configuration in {loader.config_dir}...")

    all_valid = True

    pods = loader.load_pods()
    if not pods:
        print("❌ No pods defined in pods.yaml")
        all_valid = False

    seen = {}
    for pod, profiles in pods.items():
        print(f"\n📦 Pod {pod}")
        for profile_id in profiles:
            if profile_id in seen:
                print(f"❌ {profile_id} is already managed by pod {seen[profile_id]}")
                all_valid = False
                continue
            seen[profile_id] = pod

            try:
                errors = validate_profile_config(loader, profile_id)

                if errors:
                    print(f"❌ {profile_id}: {len(errors)} validation errors:")
                    for error in errors:
                        print(f"  • {error.field}: {error.message} (value: {error.value})")
                    all_valid = False
                else:
                    command = loader.worker_command(profile_id)
                    print(f"✅ {profile_id}: {' '.join(command)}")

            except Exception as e:
                print(f"❌ Error validating {profile_id}: {e}")
                all_valid = False

    if all_valid:
        print("\n🎉 All configuration validation passed!")
        sys.exit(0)
    else:
        print("\n❌ Configuration validation failed!")
        sys.exit(1)


if __name__ == "__main__":
    main()
