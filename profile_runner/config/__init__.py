"""Runner configuration: dataclass defaults, YAML loading and validation."""
