#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Jikan (MyAnimeList) – Character Crawler
- Pages through https://api.jikan.moe/v4/characters?page=N
- Looks up the anime each new character appears in (/characters/<mal_id>/anime)
- Keeps ONE JSON array of characters; names already in the file are never fetched again
- Uploads the finished file to a Google Drive folder (replacing a same-named file)

Usage:
  python download_data.py
  python download_data.py --out data/characters.json --max-pages 20 --sleep 2
  python download_data.py --no-upload

Environment:
  GOOGLE_SERVICE_ACCOUNT   service account JSON (the content, not a path)
  DRIVE_FOLDER_ID          target Drive folder

Output (array of):
  {"name": "...", "image_url": "..." | null, "anime_titles": ["...", ...]}

Deps:
  pip install requests google-api-python-client google-auth
"""

import argparse
import json
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

import requests

from upload_data import ConfigError, DriveUploader, load_service_account_info

log = logging.getLogger(__name__)

# -----------------------------
# CONFIG (defaults)
# -----------------------------

DEFAULT_BASE_URL = "https://api.jikan.moe/v4"
DEFAULT_MAX_PAGES = 1151
DEFAULT_DELAY_S = 1.5
DEFAULT_OUT_JSON = "characters.json"

DEFAULT_USER_AGENT = os.getenv(
    "USER_AGENT",
    "jikan-characters crawler - sequential, rate limited",
)

# Unset = requests default (no timeout)
HTTP_CONNECT_TIMEOUT = float(os.environ["HTTP_CONNECT_TIMEOUT"]) if os.getenv("HTTP_CONNECT_TIMEOUT") else None
HTTP_READ_TIMEOUT = float(os.environ["HTTP_READ_TIMEOUT"]) if os.getenv("HTTP_READ_TIMEOUT") else None


@dataclass
class CrawlConfig:
    base_url: str = DEFAULT_BASE_URL
    max_pages: int = DEFAULT_MAX_PAGES
    delay_s: float = DEFAULT_DELAY_S
    out_json: str = DEFAULT_OUT_JSON
    upload: bool = True
    drive_file_name: Optional[str] = None
    drive_folder_id: Optional[str] = None
    checkpoint_every: int = 0
    user_agent: str = DEFAULT_USER_AGENT
    connect_timeout: Optional[float] = HTTP_CONNECT_TIMEOUT
    read_timeout: Optional[float] = HTTP_READ_TIMEOUT

    @property
    def upload_name(self) -> str:
        return self.drive_file_name or os.path.basename(self.out_json) or DEFAULT_OUT_JSON


@dataclass
class CharacterRecord:
    name: str
    image_url: Optional[str] = None
    anime_titles: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "image_url": self.image_url,
            "anime_titles": list(self.anime_titles),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CharacterRecord":
        titles = d.get("anime_titles") or []
        return cls(
            name=d["name"],
            image_url=d.get("image_url"),
            anime_titles=list(titles) if isinstance(titles, list) else [],
        )


class RunState:
    """
    Ordered character records plus a name index mirroring them.
    The first record seen for a name wins; later ones are refused.
    """

    def __init__(self, records: Optional[List[CharacterRecord]] = None) -> None:
        self.records: List[CharacterRecord] = []
        self.by_name: Dict[str, CharacterRecord] = {}
        for rec in records or []:
            self.add(rec)

    def add(self, rec: CharacterRecord) -> bool:
        if rec.name in self.by_name:
            return False
        self.records.append(rec)
        self.by_name[rec.name] = rec
        return True

    def __contains__(self, name: object) -> bool:
        return name in self.by_name

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[CharacterRecord]:
        return iter(self.records)


@dataclass
class RunStats:
    pages_ok: int = 0
    pages_failed: int = 0
    added: int = 0
    skipped_duplicates: int = 0
    anime_failed: int = 0
    nameless: int = 0
    uploaded_file_id: Optional[str] = None


class JikanClient:
    def __init__(self, config: CrawlConfig, session: Optional[requests.Session] = None) -> None:
        self.base_url = config.base_url.rstrip("/")
        self.sleep_s = config.delay_s
        if config.connect_timeout is None and config.read_timeout is None:
            self.timeout = None
        else:
            self.timeout = (config.connect_timeout, config.read_timeout)
        self.s = session if session is not None else requests.Session()
        self.s.headers.update(
            {
                "User-Agent": config.user_agent,
                "Accept": "application/json",
            }
        )

    def pause(self) -> None:
        if self.sleep_s > 0:
            time.sleep(self.sleep_s)

    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        # One shot, no retry: callers decide what a failure means
        r = self.s.get(f"{self.base_url}{path}", params=params, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def fetch_character_page(self, page: int) -> Optional[List[Dict[str, Any]]]:
        """
        Returns the `data` list of one listing page, or None if the page could not be used.
        """
        try:
            body = self.get_json("/characters", params={"page": page})
        except (requests.RequestException, ValueError) as e:
            log.warning("Failed to fetch page %d: %s", page, e)
            return None

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, list):
            log.warning("Failed to fetch page %d: response has no 'data' list", page)
            return None
        return data

    def fetch_anime_titles(self, mal_id: Any, name: Optional[str] = None) -> Optional[List[str]]:
        try:
            body = self.get_json(f"/characters/{mal_id}/anime")
            titles = [entry["anime"]["title"] for entry in body["data"]]
            for t in titles:
                if not isinstance(t, str):
                    raise TypeError(f"anime title is not a string: {t!r}")
            return titles
        except (requests.RequestException, ValueError, KeyError, TypeError) as e:
            log.warning("Error fetching anime for %s (mal_id=%s): %s", name or "character", mal_id, e)
            return None


def extract_image_url(summary: Dict[str, Any]) -> Optional[str]:
    images = summary.get("images")
    jpg = images.get("jpg") if isinstance(images, dict) else None
    url = jpg.get("image_url") if isinstance(jpg, dict) else None
    return url or None


def build_record(summary: Dict[str, Any], anime_titles: List[str]) -> CharacterRecord:
    return CharacterRecord(
        name=summary["name"],
        image_url=extract_image_url(summary),
        anime_titles=list(anime_titles),
    )


def load_existing(path: str) -> RunState:
    """
    Seed state from a previous run. A missing, empty or unreadable file means
    "no prior state"; it is reported but never fatal.
    """
    if not os.path.exists(path) or os.path.getsize(path) == 0:
        return RunState()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        log.warning("Could not read existing %s, starting empty: %s", path, e)
        return RunState()

    if not isinstance(data, list):
        log.warning("Existing %s is not a JSON array, starting empty", path)
        return RunState()

    state = RunState()
    dropped = 0
    for item in data:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str) or not item["name"]:
            dropped += 1
            continue
        if not state.add(CharacterRecord.from_dict(item)):
            dropped += 1
    if dropped:
        log.warning("Dropped %d invalid or duplicate entries from %s", dropped, path)

    log.info("Loaded %d existing characters from %s", len(state), path)
    return state


def save_json(path: str, records: List[CharacterRecord]) -> None:
    parent = os.path.dirname(os.path.abspath(path))
    os.makedirs(parent, exist_ok=True)
    tmp = path + ".tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump([r.to_dict() for r in records], f, ensure_ascii=False, indent=2)
        f.write("\n")
    os.replace(tmp, path)


def crawl(config: CrawlConfig, state: RunState, client: JikanClient, stats: RunStats) -> None:
    for page in range(1, config.max_pages + 1):
        log.info("[PAGE] %d/%d", page, config.max_pages)

        characters = client.fetch_character_page(page)
        if characters is None:
            stats.pages_failed += 1
            client.pause()
            continue
        stats.pages_ok += 1

        for summary in characters:
            name = summary.get("name") if isinstance(summary, dict) else None
            if not isinstance(name, str) or not name:
                stats.nameless += 1
                log.warning("Ignoring character without a name on page %d", page)
                client.pause()
                continue

            if name in state:
                stats.skipped_duplicates += 1
                log.info("[SKIP] %s (already in JSON)", name)
                client.pause()
                continue

            log.info("[CRAWL] %s", name)
            titles = client.fetch_anime_titles(summary.get("mal_id"), name)
            if titles is None:
                stats.anime_failed += 1
                titles = []

            state.add(build_record(summary, titles))
            stats.added += 1

            if config.checkpoint_every > 0 and stats.added % config.checkpoint_every == 0:
                save_json(config.out_json, state.records)

            client.pause()

        client.pause()


def run(
    config: CrawlConfig,
    client: Optional[JikanClient] = None,
    uploader: Optional[DriveUploader] = None,
) -> RunStats:
    if config.upload and uploader is None:
        if not config.drive_folder_id:
            raise ConfigError("DRIVE_FOLDER_ID is not set")
        info = load_service_account_info(os.getenv("GOOGLE_SERVICE_ACCOUNT"))
        uploader = DriveUploader(info, config.drive_folder_id)

    client = client or JikanClient(config)
    stats = RunStats()

    state = load_existing(config.out_json)
    crawl(config, state, client, stats)

    save_json(config.out_json, state.records)
    log.info(
        "[DONE] Wrote: %s (characters=%d, new=%d, duplicates=%d, failed pages=%d, failed anime lookups=%d)",
        config.out_json,
        len(state),
        stats.added,
        stats.skipped_duplicates,
        stats.pages_failed,
        stats.anime_failed,
    )

    if config.upload and uploader is not None:
        stats.uploaded_file_id = uploader.upload(config.out_json, config.upload_name)

    return stats


def build_config(argv: Optional[List[str]] = None) -> CrawlConfig:
    ap = argparse.ArgumentParser(description="Crawl Jikan characters into one JSON file")
    ap.add_argument("--base-url", default=os.getenv("JIKAN_BASE_URL", DEFAULT_BASE_URL), help="Jikan API base URL")
    ap.add_argument("--max-pages", type=int, default=int(os.getenv("MAX_PAGES", str(DEFAULT_MAX_PAGES))), help="Last page to request")
    ap.add_argument("--sleep", type=float, default=float(os.getenv("REQUEST_DELAY", str(DEFAULT_DELAY_S))), help="Sleep after each page/character (seconds)")
    ap.add_argument("--out", default=os.getenv("OUT_JSON_PATH", DEFAULT_OUT_JSON), help="Output JSON file (also read to resume)")
    ap.add_argument("--drive-name", default=os.getenv("DRIVE_FILE_NAME"), help="File name on Drive (default: output file name)")
    ap.add_argument("--no-upload", action="store_true", help="Skip the Google Drive upload")
    ap.add_argument("--checkpoint-every", type=int, default=0, help="Also save after every N new characters (0 = only at the end)")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = ap.parse_args(argv)

    level = logging.DEBUG if args.verbose else os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    return CrawlConfig(
        base_url=args.base_url,
        max_pages=args.max_pages,
        delay_s=args.sleep,
        out_json=args.out,
        upload=not args.no_upload,
        drive_file_name=args.drive_name,
        drive_folder_id=os.getenv("DRIVE_FOLDER_ID"),
        checkpoint_every=args.checkpoint_every,
    )


def main(argv: Optional[List[str]] = None) -> int:
    config = build_config(argv)
    try:
        run(config)
    except ConfigError as e:
        raise SystemExit(f"Configuration error: {e}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
