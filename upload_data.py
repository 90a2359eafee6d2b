#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
upload_data.py
Pushes a local JSON file into a Google Drive folder:
  - same name already in the folder  ->  content replaced in place
  - otherwise                        ->  new file created in the folder

Credentials come from a service account whose JSON is passed in directly
(GOOGLE_SERVICE_ACCOUNT env var), scoped to drive.file ("files created by this app").

Deps:
  pip install google-api-python-client google-auth
"""

import json
import logging
import os
from typing import Any, Dict, Optional

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.http import MediaFileUpload

log = logging.getLogger(__name__)

DRIVE_SCOPES = ["https://www.googleapis.com/auth/drive.file"]
JSON_MIME = "application/json"


class ConfigError(RuntimeError):
    """Configuration the run cannot start without."""


def load_service_account_info(raw: Optional[str]) -> Dict[str, Any]:
    if not raw or not raw.strip():
        raise ConfigError("GOOGLE_SERVICE_ACCOUNT is not set")
    try:
        info = json.loads(raw)
    except ValueError as e:
        raise ConfigError(f"GOOGLE_SERVICE_ACCOUNT is not valid JSON: {e}") from e
    if not isinstance(info, dict):
        raise ConfigError("GOOGLE_SERVICE_ACCOUNT must be a JSON object")
    return info


def _quote_query_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


class DriveUploader:
    def __init__(
        self,
        service_account_info: Dict[str, Any],
        folder_id: str,
        service: Any = None,
    ) -> None:
        self.service_account_info = service_account_info
        self.folder_id = folder_id
        self._service = service

    @property
    def service(self) -> Any:
        # Authenticate on first use; a bad key only costs the upload, not the crawl
        if self._service is None:
            creds = service_account.Credentials.from_service_account_info(
                self.service_account_info, scopes=DRIVE_SCOPES
            )
            self._service = build("drive", "v3", credentials=creds, cache_discovery=False)
        return self._service

    def find_file_id(self, file_name: str) -> Optional[str]:
        q = (
            f"'{_quote_query_value(self.folder_id)}' in parents "
            f"and name='{_quote_query_value(file_name)}' and trashed=false"
        )
        resp = self.service.files().list(q=q, fields="files(id, name)", spaces="drive").execute()
        files = resp.get("files") or []
        if not files:
            return None
        return files[0]["id"]

    def upload(self, local_path: str, file_name: str) -> Optional[str]:
        """
        Returns the Drive file id, or None when the upload did not happen.
        Never raises: the local file stays valid whatever Drive does.
        """
        try:
            media = MediaFileUpload(local_path, mimetype=JSON_MIME, resumable=False)
            file_id = self.find_file_id(file_name)
            if file_id:
                self.service.files().update(fileId=file_id, media_body=media).execute()
                log.info("Updated existing file on Drive: %s (%s)", file_name, file_id)
                return file_id

            metadata = {"name": file_name, "parents": [self.folder_id]}
            created = self.service.files().create(body=metadata, media_body=media, fields="id").execute()
            file_id = created.get("id")
            log.info("Uploaded new file to Drive: %s (%s)", file_name, file_id)
            return file_id
        except Exception as e:
            log.error("Failed to upload %s to Google Drive: %s", os.path.basename(local_path), e)
            return None
