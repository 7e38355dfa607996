import json
import logging

import pytest

from vulnstore import version
from vulnstore.common.errors import IdentityConflictError
from vulnstore.common.models.records import VulnerabilityRecord
from vulnstore.db import (
    AffectedCPEHandle,
    AffectedPackageHandle,
    VulnerabilityHandle,
    db_blobs,
    db_metadata,
    db_operating_systems,
    db_packages,
    db_providers,
    db_vulnerabilities,
    read_session_scope,
)
from vulnstore.engine.loader import RecordLoader, RecordStatus
from tests.utils import make_affected_package, make_record

LOG4J_CPE = "cpe:2.3:a:apache:log4j:*:*:*:*:*:*"


def ghsa_record(**kwargs):
    args = dict(
        name="GHSA-xxxx-yyyy-zzzz",
        provider="github",
        aliases=["CVE-2024-0001"],
        affected_packages=[make_affected_package("npm", "left-pad", fix="1.0")],
    )
    args.update(kwargs)
    return make_record(**args)


def log4j_record(name, package_name):
    return make_record(
        name=name,
        provider="github",
        affected_packages=[
            make_affected_package("java-archive", package_name, cpes=[LOG4J_CPE])
        ],
    )


def test_load_record(vulnstore_db):
    result = RecordLoader().load_record(ghsa_record())
    assert result.ok
    assert result.vulnerability == "GHSA-xxxx-yyyy-zzzz"
    assert result.error is None

    with read_session_scope() as db:
        assert db_providers.get(db, "github").processor == "vunnel@0.29.0"
        assert db_vulnerabilities.get_aliases(db, "GHSA-xxxx-yyyy-zzzz") == ["CVE-2024-0001"]

        handles = db_vulnerabilities.get_affected_packages(
            db, vulnerability_names=["GHSA-xxxx-yyyy-zzzz"]
        )
        assert len(handles) == 1
        assert str(handles[0].package) == "npm/left-pad"
        assert handles[0].operating_system is None


def test_load_record_inputs(vulnstore_db):
    loader = RecordLoader()
    assert loader.load_record(json.dumps(ghsa_record(name="GHSA-1111-2222-3333"))).ok
    assert loader.load_record(
        VulnerabilityRecord.from_json(ghsa_record(name="GHSA-4444-5555-6666"))
    ).ok


def test_load_os_and_cpe_records(vulnstore_db):
    record = make_record(
        name="USN-0001-1",
        provider="ubuntu",
        affected_packages=[
            make_affected_package(
                "deb", "openssl", os={"name": "ubuntu", "version": "22.04", "codename": "jammy"}
            ),
            make_affected_package(
                "deb", "openssl", os={"name": "ubuntu", "version": "20.04", "codename": "focal"}
            ),
        ],
        affected_cpes=[
            {
                "cpe": "cpe:2.3:a:openssl:openssl:*:*:*:*:*:*",
                "blob": {"ranges": [{"version": {"constraint": "< 3.0.7"}}]},
            }
        ],
    )
    assert RecordLoader().load_record(record).ok

    with read_session_scope() as db:
        jammy = db_operating_systems.find_os(db, "ubuntu", "22", "04")
        assert jammy.codename == "jammy"
        assert db_operating_systems.find_os(db, "ubuntu", "20", "04") is not None
        assert db.query(AffectedPackageHandle).count() == 2
        assert db.query(AffectedCPEHandle).count() == 1
        # both affected packages share the package row
        assert len(db_packages.find_packages_by_name(db, "openssl")) == 1


@pytest.mark.parametrize(
    "mutate",
    [
        lambda r: r["vulnerability"].pop("blob"),
        lambda r: r["vulnerability"].update({"status": "unknown"}),
        lambda r: r["vulnerability"].update({"aliases": ["GHSA-xxxx-yyyy-zzzz"]}),
        lambda r: r["affected_packages"][0]["package"].update({"cpes": ["not-a-cpe"]}),
        lambda r: r["affected_packages"][0].update({"os": {"name": "ubuntu", "version": "22.04", "major_version": "22"}}),
    ],
)
def test_load_record_invalid(vulnstore_db, mutate):
    record = ghsa_record()
    mutate(record)

    result = RecordLoader().load_record(record)
    assert result.status == RecordStatus.invalid
    assert result.error
    assert result.exception is not None

    with read_session_scope() as db:
        assert db.query(VulnerabilityHandle).count() == 0


def test_load_record_invalid_type(vulnstore_db):
    result = RecordLoader().load_record(5)
    assert result.status == RecordStatus.invalid
    assert result.vulnerability is None


def test_load_conflict_rolls_back_record(vulnstore_db):
    result = RecordLoader().load(
        [
            log4j_record("GHSA-aaaa-bbbb-cccc", "log4j-core"),
            log4j_record("GHSA-dddd-eeee-ffff", "log4j-api"),
            ghsa_record(),
        ]
    )

    assert result.status == RecordStatus.failure
    assert result.loaded_count == 2
    assert result.failed_count == 1
    assert [r.status for r in result.records] == [
        RecordStatus.success,
        RecordStatus.conflict,
        RecordStatus.success,
    ]
    assert isinstance(result.records[1].exception, IdentityConflictError)

    with read_session_scope() as db:
        assert db_vulnerabilities.get_vulnerabilities(db, name="GHSA-dddd-eeee-ffff") == []
        assert db_packages.find_package(db, "java-archive", "log4j-api") is None


def test_load_abort_on_error(vulnstore_db):
    records = [
        log4j_record("GHSA-aaaa-bbbb-cccc", "log4j-core"),
        log4j_record("GHSA-dddd-eeee-ffff", "log4j-api"),
        ghsa_record(),
    ]

    with pytest.raises(IdentityConflictError):
        RecordLoader().load(records, abort_on_error=True)

    with read_session_scope() as db:
        names = [h.name for h in db_vulnerabilities.get_vulnerabilities(db)]
        assert names == ["GHSA-aaaa-bbbb-cccc"]


def test_abort_on_error_from_config(vulnstore_db, test_config):
    test_config["loader"]["abort_on_error"] = True
    test_config["loader"]["progress_interval"] = 5

    loader = RecordLoader()
    assert loader.abort_on_error is True
    assert loader.progress_interval == 5

    with pytest.raises(IdentityConflictError):
        loader.load(
            [
                log4j_record("GHSA-aaaa-bbbb-cccc", "log4j-core"),
                log4j_record("GHSA-dddd-eeee-ffff", "log4j-api"),
            ]
        )

    # an explicit argument wins over the configuration
    assert RecordLoader(abort_on_error=False).abort_on_error is False


def test_reload_is_idempotent(vulnstore_db):
    loader = RecordLoader()
    first = loader.load([ghsa_record()])
    second = loader.load([ghsa_record()])
    assert first.status == second.status == RecordStatus.success

    with read_session_scope() as db:
        assert db.query(VulnerabilityHandle).count() == 1
        assert db.query(AffectedPackageHandle).count() == 1


def test_reload_with_changed_ranges(vulnstore_db):
    loader = RecordLoader()
    assert loader.load_record(
        ghsa_record(affected_packages=[make_affected_package("npm", "left-pad", constraint="< 1.0")])
    ).ok

    # same advisory text, new affected range and fix
    second = loader.load_record(
        ghsa_record(
            affected_packages=[
                make_affected_package("npm", "left-pad", constraint="< 2.0", fix="2.0")
            ]
        )
    )
    assert second.status == RecordStatus.success

    with read_session_scope() as db:
        assert db.query(VulnerabilityHandle).count() == 1
        handles = db_vulnerabilities.get_affected_packages(
            db, vulnerability_names=["GHSA-xxxx-yyyy-zzzz"]
        )
        details = [db_blobs.get_affected_blob(db, h.blob_id) for h in handles]

    constraints = [r.version.constraint for d in details for r in d.ranges]
    assert "< 2.0" in constraints
    fixes = [r.fix.version for d in details for r in d.ranges]
    assert "2.0" in fixes


def test_reload_adds_new_affected_cpe(vulnstore_db):
    loader = RecordLoader()
    record = make_record(name="CVE-2021-44228", provider="nvd")
    assert loader.load_record(record).ok

    record["affected_cpes"] = [
        {"cpe": LOG4J_CPE, "blob": {"ranges": [{"version": {"constraint": "< 2.15.0"}}]}}
    ]
    assert loader.load_record(record).ok
    assert loader.load_record(record).ok

    with read_session_scope() as db:
        assert db.query(VulnerabilityHandle).count() == 1
        assert db.query(AffectedCPEHandle).count() == 1


def test_progress_logging(vulnstore_db, caplog):
    loader = RecordLoader(progress_interval=2, operation_id="op-1")
    with caplog.at_level(logging.INFO, logger="vulnstore"):
        loader.load(
            [ghsa_record(name="GHSA-{}".format(i), input_digest="xxh64:{}".format(i)) for i in range(4)]
        )

    progress = [r.getMessage() for r in caplog.records if "Processed" in r.getMessage()]
    assert len(progress) == 2
    assert "operation_id=op-1" in progress[0]
    assert "provider=github" in progress[0]


def test_finalize(vulnstore_db):
    schema_version, build_timestamp = RecordLoader().finalize()
    assert schema_version == version.schema_version
    assert build_timestamp is not None

    with read_session_scope() as db:
        assert db_metadata.get(db).schema_version == version.schema_version
