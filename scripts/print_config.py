from __future__ import annotations

import argparse
import json
from typing import Optional

from plantops.core.config import ConfigManager
from plantops.core.config.paths import ConfigFsPaths
from plantops.core.events.redaction import redact


def main(argv: Optional[list[str]] = None) -> None:
    ap = argparse.ArgumentParser(description="Print the effective configuration (fallback passwords masked).")
    ap.add_argument("--root", default=".", help="Root directory holding config/ (default: .)")
    args = ap.parse_args(argv)

    cm = ConfigManager(fs=ConfigFsPaths(args.root), read_only=True)
    cfg = cm.load()
    print(json.dumps(redact(cfg.model_dump(mode="json")), indent=2, sort_keys=True))


if __name__ == "__main__":
    main()
