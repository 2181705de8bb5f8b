# common/network_utils.py
# -*- coding: utf-8 -*-
"""
Downloading and unpacking release artifacts over HTTP(S).
"""

import logging
import tarfile
from pathlib import Path
from typing import Optional, Union

import requests

module_logger = logging.getLogger(__name__)


def download_file(
    url: str,
    download_to_path: Union[str, Path],
    timeout: float,
    current_logger: Optional[logging.Logger] = None,
) -> bool:
    """
    Download `url` to `download_to_path`.

    Args:
        url: The URL of the file.
        download_to_path: The file path where the download is saved.
        timeout: Seconds allowed for the connection and for each read.
        current_logger: Logger to use.

    Returns:
        True if the download was successful, False otherwise.
    """
    logger_to_use = current_logger or module_logger
    download_path = Path(download_to_path)
    logger_to_use.info(f"Downloading {url} to {download_path}")
    response: Optional[requests.Response] = None

    try:
        download_path.parent.mkdir(parents=True, exist_ok=True)
        response = requests.get(url, stream=True, timeout=timeout)
        response.raise_for_status()

        with open(download_path, "wb") as f:
            for chunk in response.iter_content(chunk_size=8192):
                if chunk:
                    f.write(chunk)
        logger_to_use.info(f"Downloaded {download_path}")
        return True
    except requests.exceptions.HTTPError as http_err:
        status_code = response.status_code if response is not None else "Unknown"
        logger_to_use.error(
            f"HTTP error occurred: {http_err} - Status code: {status_code}"
        )
    except requests.exceptions.Timeout as timeout_err:
        logger_to_use.error(
            f"Timed out after {timeout}s downloading {url}: {timeout_err}"
        )
    except requests.exceptions.ConnectionError as conn_err:
        logger_to_use.error(f"Connection error occurred: {conn_err}")
    except requests.exceptions.RequestException as req_err:
        logger_to_use.error(
            f"An unexpected error occurred during download: {req_err}"
        )
    except OSError as io_err:
        logger_to_use.error(f"File I/O error when saving download: {io_err}")
    return False


def extract_tarball(
    archive_path: Union[str, Path],
    extract_to_dir: Union[str, Path],
    current_logger: Optional[logging.Logger] = None,
) -> bool:
    """
    Extract a gzip-compressed tar archive into `extract_to_dir`.

    Members that would land outside the target directory are rejected.

    Returns:
        True if extraction was successful, False otherwise.
    """
    logger_to_use = current_logger or module_logger
    archive = Path(archive_path)
    extract_path = Path(extract_to_dir)

    if not archive.is_file():
        logger_to_use.error(f"Archive not found or is not a file: {archive}")
        return False

    try:
        extract_path.mkdir(parents=True, exist_ok=True)
        with tarfile.open(archive, "r:gz") as tar_ref:
            tar_ref.extractall(extract_path, filter="data")
        logger_to_use.info(f"Extracted {archive} to {extract_path}")
        return True
    except tarfile.TarError as tar_err:
        logger_to_use.error(
            f"'{archive}' is not a valid tar archive or is corrupted: {tar_err}"
        )
    except OSError as io_err:
        logger_to_use.error(f"File I/O error during extraction: {io_err}")
    return False
