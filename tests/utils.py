"""
Utilities for setting up and running tests of all types
"""
from vulnstore.subsys.logger import enable_test_logging


def init_test_logging(level="debug", output_file=None):
    """
    Initialize logging configured to use a standard logger
    :return:
    """
    enable_test_logging(level=level.upper(), outfile=output_file)


def make_record(
    name="CVE-2024-0001",
    provider="nvd",
    status="active",
    description="a vulnerability",
    aliases=None,
    affected_packages=None,
    affected_cpes=None,
    date_captured="2025-01-08T01:32:55Z",
    input_digest="xxh64:0a160d2b53dd0208",
):
    """
    Build the json form of an upstream vulnerability record
    """
    return {
        "provider": {
            "id": provider,
            "version": "1",
            "processor": "vunnel@0.29.0",
            "date_captured": date_captured,
            "input_digest": input_digest,
        },
        "vulnerability": {
            "name": name,
            "status": status,
            "published_date": "2024-01-02T03:04:05Z",
            "aliases": aliases or [],
            "blob": {
                "id": name,
                "description": description,
                "references": [{"url": "https://example.com/{}".format(name)}],
                "severities": [{"scheme": "HML", "value": "high", "rank": 1}],
            },
        },
        "affected_packages": affected_packages or [],
        "affected_cpes": affected_cpes or [],
    }


def make_affected_package(ecosystem, name, constraint="< 1.0", cpes=None, os=None, fix=None):
    affected = {
        "package": {"ecosystem": ecosystem, "name": name, "cpes": cpes or []},
        "blob": {
            "ranges": [
                {
                    "version": {"type": "semver", "constraint": constraint},
                    "fix": {"version": fix or "", "state": "fixed" if fix else "not-fixed"},
                }
            ]
        },
    }
    if os:
        affected["os"] = os
    return affected
