#!/usr/bin/env python3
"""
Configuration Demo - Profile Runner

This script demonstrates the configuration system, showing how to:
- Inspect the dataclass defaults
- Use 3-tier configuration precedence
- Override parameters per profile
- Validate configuration parameters

Run: python examples/configuration_demo.py
"""

from dataclasses import asdict
from pathlib import Path

from profile_runner.config.defaults import get_default_config
from profile_runner.config.loader import ConfigLoader
from profile_runner.config.validation import ConfigValidator
from profile_runner.errors import ConfigurationError

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"


def demonstrate_default_config():
    """Show the default configuration structure."""
    print("⚙️ DEFAULT CONFIGURATION")
    print("=" * 50)

    config = get_default_config()
    for section in ("recovery", "launcher", "supervisor"):
        print(f"\n{section}:")
        for param, value in asdict(getattr(config, section)).items():
            print(f"   {param}: {value}")
    print()


def demonstrate_precedence():
    """Show defaults, runner.yaml and per-profile overrides merging."""
    print("📚 CONFIGURATION PRECEDENCE")
    print("=" * 50)

    loader = ConfigLoader.create(CONFIG_DIR)
    print(f"Config directory: {loader.config_dir}")

    for pod, profiles in loader.load_pods().items():
        print(f"\nPod {pod}:")
        for profile_id in profiles:
            config = loader.load_runner_config(profile_id)
            print(f"   {profile_id}: max_runtime={config.launcher.max_runtime_seconds}s "
                  f"command={' '.join(loader.worker_command(profile_id)[1:])}")

    print("\nExplicit override (max_error_streak=1):")
    config = loader.load_runner_config(overrides={"recovery": {"max_error_streak": 1}})
    print(f"   max_error_streak: {config.recovery.max_error_streak}")
    print()


def demonstrate_validation():
    """Show configuration validation."""
    print("✅ CONFIGURATION VALIDATION")
    print("=" * 50)

    invalid = {
        "recovery": {"max_error_streak": 0, "cooldown_seconds": -5},
        "launcher": {"worker_command": []},
        "actions": {"client": "browser"},
    }
    for error in ConfigValidator.validate_config(invalid):
        print(f"   ✗ {error.field}: {error.message} (got: {error.value})")

    try:
        ConfigLoader.create(CONFIG_DIR).load_runner_config(overrides=invalid)
    except ConfigurationError as e:
        print(f"\n   ConfigurationError with {len(e.errors)} errors raised as expected")
    print()


def main():
    demonstrate_default_config()
    demonstrate_precedence()
    demonstrate_validation()


if __name__ == "__main__":
    main()
