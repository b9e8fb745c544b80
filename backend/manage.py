#!/usr/bin/env python
from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import NoReturn

from dotenv import load_dotenv

# Variables d'environnement locales (SECRET_KEY, DB_*, EMAIL_*, OTP_*...)
BASE_DIR = Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env", override=True)


def main() -> NoReturn:
    # SQLite par défaut en local si aucune base n'est configurée
    if not os.getenv("USE_SQLITE") and not os.getenv("DATABASE_URL") and not os.getenv("DB_HOST"):
        os.environ["USE_SQLITE"] = "1"
    os.environ.setdefault("DJANGO_SETTINGS_MODULE", "core.settings")
    try:
        from django.core.management import execute_from_command_line
    except ImportError as exc:
        raise ImportError(
            "Django n'est pas installé : pip install -e . depuis la racine du dépôt."
        ) from exc
    execute_from_command_line(sys.argv)


if __name__ == "__main__":
    main()
