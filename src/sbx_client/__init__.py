# src/sbx_client/__init__.py

"""
SBX Cloud client library.

This package provides an asynchronous client for the SBX Cloud API: a fluent
find-query builder, typed responses, an auto-paginating find executor and
typed repositories over SBX models.

It initializes a logger with a NullHandler and makes the service, the query
builder, the wire types, the factories and the exceptions available at the
top level.
"""

import logging

# --------------------------------------------------------------------------
# Logging Setup
# --------------------------------------------------------------------------
# Library logs are discarded unless the consuming application configures
# logging for "sbx_client".
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())
logger.propagate = False

# --------------------------------------------------------------------------
# Exceptions
# --------------------------------------------------------------------------
from .base.exceptions import (
    ModelRegistrationError,
    ObjectNotFoundException,
    SBXException,
    SbxRepositoryException,
    TransportError,
)

# --------------------------------------------------------------------------
# Query Building and Wire Types
# --------------------------------------------------------------------------
from .base.query import (
    AndOr,
    Conditions,
    FindQuery,
    FindRequest,
    Keys,
    LogicalExpression,
    LogicalGroup,
    Operation,
    WhereClause,
)
from .base.response import (
    FieldType,
    FindResponse,
    Folder,
    FolderContent,
    Membership,
    SBXConfig,
    SBXMeta,
    SBXModel,
    SBXProperty,
    SBXResponse,
    SBXUser,
    SBXUserResponse,
)
from .base.model import SbxEntity, get_model_name, is_registered

# --------------------------------------------------------------------------
# Service, Transport and Repositories
# --------------------------------------------------------------------------
from .base.interfaces import Transport
from .transport import HttpxTransport
from .service import DEFAULT_CHUNK_SIZE, EmailParams, SBXService
from .repository import RepositoryQuery, SbxRepository

# --------------------------------------------------------------------------
# Configuration
# --------------------------------------------------------------------------
from .config import (
    SBXSettings,
    from_env,
    from_settings,
    multidomain,
    with_app_key_and_token,
    with_custom,
    with_token,
)

__all__ = [
    # Exceptions
    "SBXException",
    "TransportError",
    "ModelRegistrationError",
    "ObjectNotFoundException",
    "SbxRepositoryException",
    # Query
    "FindQuery",
    "FindRequest",
    "Operation",
    "AndOr",
    "LogicalExpression",
    "LogicalGroup",
    "WhereClause",
    "Conditions",
    "Keys",
    # Responses
    "FindResponse",
    "SBXResponse",
    "SBXUserResponse",
    "SBXUser",
    "Membership",
    "SBXConfig",
    "SBXModel",
    "SBXProperty",
    "SBXMeta",
    "FieldType",
    "Folder",
    "FolderContent",
    # Entities
    "SbxEntity",
    "get_model_name",
    "is_registered",
    # Service
    "Transport",
    "HttpxTransport",
    "SBXService",
    "EmailParams",
    "DEFAULT_CHUNK_SIZE",
    "SbxRepository",
    "RepositoryQuery",
    # Configuration
    "SBXSettings",
    "from_env",
    "from_settings",
    "with_token",
    "with_app_key_and_token",
    "with_custom",
    "multidomain",
    # Logging
    "logger",
]
