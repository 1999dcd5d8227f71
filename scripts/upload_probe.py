#!/usr/bin/env python3
"""Sign + direct PUT + verify a local image against a live backend.

Usage:
    ACCESS_TOKEN=... python scripts/upload_probe.py ./path/to/image.png
    ACCESS_TOKEN=... python scripts/upload_probe.py --kind banner --api-base http://127.0.0.1:3001 ./banner.jpg

Exit codes: 0 verified, 1 upload failed, 2 usage error.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Optional

from application.utils.storage import sniff_image_content_type
from core.config import get_settings
from core.logging_config import configure_logging, get_logger
from domain.common.exceptions import UploadException
from infrastructure.external.storage.local_files import read_local_file
from infrastructure.upload_client import UploadClient

logger = get_logger("upload_probe")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Probe the signed direct-upload flow")
    parser.add_argument("path", help="image file to upload (.png, .jpg, .jpeg, .webp)")
    parser.add_argument("--kind", default="avatar", choices=["avatar", "banner"])
    parser.add_argument("--api-base", default=None, help="backend base URL (overrides settings)")
    parser.add_argument("--timeout", type=float, default=None, help="PUT timeout in seconds")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace, token: str) -> int:
    path = Path(args.path)
    content_type = sniff_image_content_type(path.name)
    if not content_type:
        print(f"Unsupported file extension for: {path}", file=sys.stderr)
        return 2
    if not path.is_file():
        print(f"No such file: {path}", file=sys.stderr)
        return 2

    settings = get_settings()
    if args.api_base:
        backend = settings.backend.model_copy(update={"base_url": args.api_base.strip().rstrip("/")})
        settings = settings.model_copy(update={"backend": backend})

    local_file = await read_local_file(path, content_type=content_type)
    print(f"[probe] apiBase={settings.backend.base_url}")
    print(f"[probe] file={path} bytes={local_file.size} contentType={content_type}")

    def _progress(pct: float) -> None:
        logger.debug("PUT progress", percent=round(pct, 1))

    async with UploadClient(settings) as client:
        try:
            outcome = await client.direct.upload_direct(
                local_file,
                access_token=token,
                kind=args.kind,
                on_progress=_progress,
                timeout=args.timeout,
            )
        except UploadException as exc:
            print(
                f"[probe] FAIL stage={exc.stage} type={exc.error_type} status={exc.status_code} "
                f"request_id={exc.request_id or 'n/a'}: {exc.message}",
                file=sys.stderr,
            )
            return 1

    print(json.dumps(outcome.to_dict(), indent=2))
    print("[probe] PASS")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    token = os.environ.get("ACCESS_TOKEN", "").strip()
    if not token:
        print("Missing ACCESS_TOKEN", file=sys.stderr)
        return 2
    configure_logging(debug=get_settings().DEBUG)
    return asyncio.run(run(args, token))


if __name__ == "__main__":
    sys.exit(main())
