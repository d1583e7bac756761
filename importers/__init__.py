"""Import package for Kibela to esa migration.

Package Structure:
- esa_client: REST client for the esa v1 API
- esa_importer: Builds post and comment payloads and performs single calls
- id_mapping_tracker: Tracks Kibela note id to esa post number mappings
"""

from .esa_client import EsaClient, EsaApiError
from .esa_importer import EsaImporter
from .id_mapping_tracker import IdMappingTracker, MappedPost

__all__ = [
    'EsaClient',
    'EsaApiError',
    'EsaImporter',
    'IdMappingTracker',
    'MappedPost'
]
