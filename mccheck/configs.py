from .config import load_config

config = load_config()

VERSION = "1.0.0"
