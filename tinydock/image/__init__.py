# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Materializing image layers on local disk.

Layers are downloaded concurrently into a staging directory and then
extracted one by one in manifest order.
"""

from tinydock.image.download import download_layers
from tinydock.image.extract import extract_layer, extract_layers
from tinydock.image.staging import (
    STAGING_PREFIX,
    create_staging_dir,
    remove_staging_dir,
)


__all__ = [
    "STAGING_PREFIX",
    "create_staging_dir",
    "download_layers",
    "extract_layer",
    "extract_layers",
    "remove_staging_dir",
]
