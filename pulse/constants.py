# Environment variable naming the YAML configuration file
CONFIG_FILE_ENV = "PULSE_CONFIG_FILE"
DEFAULT_CONFIG_FILE = "pulse.yaml"
