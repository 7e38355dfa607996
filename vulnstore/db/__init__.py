from .entities.common import (
    do_disconnect,
    get_session,
    initialize,
    read_session_scope,
    session_scope,
)
from .entities.vulnerability_store import (
    AffectedCPEHandle,
    AffectedPackageHandle,
    Blob,
    BlobDigest,
    Cpe,
    DBMetadata,
    OperatingSystem,
    OperatingSystemSpecifierOverride,
    Package,
    PackageSpecifierOverride,
    Provider,
    VulnerabilityAlias,
    VulnerabilityHandle,
    VulnerabilityStatus,
)
from .results import FindResult
