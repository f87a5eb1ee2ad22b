from __future__ import annotations

import json
import os

from plantops.core.config.io import atomic_write_json
from plantops.core.config.models import AppConfig
from scripts.print_config import main


def test_print_config_masks_passwords_and_never_writes(tmp_path, capsys):
    main(["--root", str(tmp_path)])
    out = json.loads(capsys.readouterr().out)

    assert out["auth"]["fallback_users"]["operador"]["password"] == "***REDACTED***"
    assert out["navigation"]["default_view"] == "dashboard"
    assert not os.path.exists(os.path.join(str(tmp_path), "config", "app.json"))


def test_print_config_reads_existing_file(tmp_path, capsys):
    raw = AppConfig().model_dump(mode="json")
    raw["backend"]["api_base_url"] = "http://plant.local:9000"
    atomic_write_json(os.path.join(str(tmp_path), "config", "app.json"), raw)

    main(["--root", str(tmp_path)])
    out = json.loads(capsys.readouterr().out)
    assert out["backend"]["api_base_url"] == "http://plant.local:9000"
