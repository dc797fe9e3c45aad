"""Project root entry point for launching the JSON API."""

from __future__ import annotations

import os


def main():
    from modloc.web import create_app

    app = create_app()
    port = int(os.environ.get("MODLOC_PORT", "5500"))
    app.run(host="127.0.0.1", port=port, debug=os.environ.get("MODLOC_DEBUG") == "1")


if __name__ == "__main__":
    main()
