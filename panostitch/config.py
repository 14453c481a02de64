import json
import logging
import os
from pathlib import Path
from typing import Dict, Any

logger = logging.getLogger(__name__)

# Keyword dicts for the pipeline collaborators
SECTIONS = ("detector", "matcher", "ransac")


class Settings:

    def __init__(self, config_path: str = None):
        self.pano = False
        self.connectivity = "ring"
        self.projection = None
        self.straighten = False

        self.slope_plain = 8e-3
        self.h_factor_rounds = 3
        self.workers = os.cpu_count() or 1
        self.max_canvas_pixels = 100_000_000

        self.detector = {}
        self.matcher = {}
        self.ransac = {}

        if config_path and Path(config_path).exists():
            self.load_from_file(config_path)

        self.validate()

    def validate(self):
        if self.connectivity not in ("ring", "pairwise"):
            raise ValueError(f"Unknown connectivity mode: {self.connectivity}")
        if self.projection not in (None, "flat", "cylindrical"):
            raise ValueError(f"Unknown projection method: {self.projection}")
        if self.workers < 1:
            raise ValueError("workers must be at least 1")

    def load_from_file(self, config_path: str):
        """Overlay a JSON file on the current values; collaborator sections merge."""
        with open(config_path, 'r') as f:
            config_data = json.load(f)

        known = self.get_config_dict()
        unknown = sorted(set(config_data) - set(known))
        if unknown:
            logger.warning(f"Ignoring unknown settings in {config_path}: {', '.join(unknown)}")

        for key, value in config_data.items():
            if key not in known:
                continue
            if key in SECTIONS:
                getattr(self, key).update(value)
            else:
                setattr(self, key, value)

    def save_to_file(self, config_path: str):
        with open(config_path, 'w') as f:
            json.dump(self.get_config_dict(), f, indent=2, sort_keys=True)

    def get_config_dict(self) -> Dict[str, Any]:
        config = dict(vars(self))
        for key in SECTIONS:
            config[key] = dict(config[key])
        return config
