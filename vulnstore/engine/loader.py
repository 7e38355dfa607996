"""
Bulk-write interface. Records are loaded one at a time, each in its own transaction, so a record that fails to load
never leaves handles pointing at rows that were rolled back.
"""
import time
from dataclasses import dataclass, field
from typing import List, Optional

from vulnstore import version
from vulnstore.common.errors import (
    IdentityConflictError,
    ValidationError,
    VulnStoreError,
)
from vulnstore.common.models.records import VulnerabilityRecord
from vulnstore.common.schemas import SchemaValidationError
from vulnstore.configuration import localconfig
from vulnstore.db import (
    db_cpes,
    db_metadata,
    db_operating_systems,
    db_packages,
    db_providers,
    db_vulnerabilities,
    session_scope,
)
from vulnstore.subsys import logger


class RecordStatus(object):
    success = "success"
    invalid = "invalid"
    conflict = "conflict"
    failure = "failure"


@dataclass
class RecordLoadResult:
    vulnerability: Optional[str] = None
    status: str = RecordStatus.failure
    error: Optional[str] = None
    exception: Optional[Exception] = field(default=None, repr=False, compare=False)

    @property
    def ok(self):
        return self.status == RecordStatus.success


@dataclass
class LoadResult:
    status: str = RecordStatus.failure
    total_time_seconds: float = 0
    loaded_count: int = 0
    failed_count: int = 0
    records: List[RecordLoadResult] = field(default_factory=list)


class LogContext:
    def __init__(self, operation_id: Optional[str] = None, provider: Optional[str] = None):
        self.operation_id = operation_id
        self.provider = provider

    def format_msg(self, msg: str):
        return "{} (operation_id={}, provider={})".format(
            msg, self.operation_id, self.provider
        )


def status_for_error(err):
    if isinstance(err, (ValidationError, SchemaValidationError)):
        return RecordStatus.invalid
    elif isinstance(err, IdentityConflictError):
        return RecordStatus.conflict
    return RecordStatus.failure


class RecordLoader(object):
    """
    Loads upstream vulnerability records into the store, resolving every dimension (provider, package, cpe, os)
    before writing the handles that reference them.
    """

    def __init__(
        self,
        abort_on_error: Optional[bool] = None,
        progress_interval: Optional[int] = None,
        operation_id: Optional[str] = None,
    ):
        loader_config = localconfig.get_config().get("loader") or {}

        if abort_on_error is None:
            abort_on_error = loader_config.get("abort_on_error", False)
        if progress_interval is None:
            progress_interval = loader_config.get("progress_interval", 1000)

        self.abort_on_error = bool(abort_on_error)
        self.progress_interval = int(progress_interval or 0)
        self._log_context = LogContext(operation_id=operation_id)

    @staticmethod
    def to_record(record) -> VulnerabilityRecord:
        if isinstance(record, VulnerabilityRecord):
            return record
        elif isinstance(record, str):
            return VulnerabilityRecord.from_json_str(record)
        return VulnerabilityRecord.from_json(record)

    def load_record(self, record) -> RecordLoadResult:
        """
        Load a single record in its own transaction. Errors roll back this record only and are reported in the
        result, they are not raised.

        :param record: VulnerabilityRecord, or its json dict/string form
        :return: RecordLoadResult
        """
        result = RecordLoadResult()
        try:
            record = self.to_record(record)
            result.vulnerability = record.name
            self._log_context.provider = record.provider.id

            with session_scope() as db:
                self._write_record(db, record)

            result.status = RecordStatus.success
        except (VulnStoreError, SchemaValidationError) as err:
            result.status = status_for_error(err)
            result.error = str(err)
            result.exception = err
            logger.warn(
                self._log_context.format_msg(
                    "could not load vulnerability record {}: status={} error={}".format(
                        result.vulnerability, result.status, err
                    )
                )
            )
        except Exception as err:
            result.status = RecordStatus.failure
            result.error = str(err)
            result.exception = err
            logger.exception(
                self._log_context.format_msg(
                    "unexpected error loading vulnerability record {}".format(
                        result.vulnerability
                    )
                )
            )

        return result

    def _write_record(self, db, record: VulnerabilityRecord):
        provider = record.provider
        vuln = record.vulnerability

        db_providers.find_or_create_provider(
            db,
            provider.id,
            version=provider.version,
            processor=provider.processor,
            date_captured=provider.date_captured,
            input_digest=provider.input_digest,
        )

        handle = db_vulnerabilities.add_vulnerability(
            db,
            vuln.name,
            vuln.status,
            provider.id,
            vuln.blob,
            published_date=vuln.published_date,
            modified_date=vuln.modified_date,
            withdrawn_date=vuln.withdrawn_date,
        )
        if handle.existing:
            logger.debug(
                self._log_context.format_msg(
                    "vulnerability {} already stored, linking affected rows only".format(
                        vuln.name
                    )
                )
            )

        relink = handle.existing
        vulnerability_id = handle.id

        for alias in vuln.aliases:
            db_vulnerabilities.validate_alias(db, vuln.name, alias)
            db_vulnerabilities.add_alias(db, vuln.name, alias)

        for affected in record.affected_packages:
            package = db_packages.find_or_create_package(
                db,
                affected.package.ecosystem,
                affected.package.name,
                cpes=affected.package.cpes,
            )

            operating_system_id = None
            if affected.os is not None:
                operating_system = db_operating_systems.find_or_create_os(
                    db,
                    affected.os.name,
                    major_version=affected.os.major_version,
                    minor_version=affected.os.minor_version,
                    release_id=affected.os.release_id,
                    label_version=affected.os.label_version,
                    codename=affected.os.codename,
                )
                operating_system_id = operating_system.id

            if relink and db_vulnerabilities.find_affected_package(
                db,
                vulnerability_id,
                package.id,
                affected.blob,
                operating_system_id=operating_system_id,
            ):
                continue

            db_vulnerabilities.add_affected_package(
                db,
                vulnerability_id,
                package.id,
                affected.blob,
                operating_system_id=operating_system_id,
            )

        for affected in record.affected_cpes:
            cpe = db_cpes.find_or_create_cpe(db, affected.cpe)
            if relink and db_vulnerabilities.find_affected_cpe(
                db, vulnerability_id, cpe.id, affected.blob
            ):
                continue

            db_vulnerabilities.add_affected_cpe(db, vulnerability_id, cpe.id, affected.blob)

    def load(self, records, abort_on_error: Optional[bool] = None) -> LoadResult:
        """
        Load records sequentially.

        :param records: iterable of records (VulnerabilityRecord or json dicts/strings)
        :param abort_on_error: re-raise on the first failing record instead of continuing, defaults to the loader setting
        :return: LoadResult
        """
        if abort_on_error is None:
            abort_on_error = self.abort_on_error

        result = LoadResult()
        started = time.time()

        logger.info(self._log_context.format_msg("Loading vulnerability records"))
        for record in records:
            record_result = self.load_record(record)
            result.records.append(record_result)

            if record_result.ok:
                result.loaded_count += 1
            else:
                result.failed_count += 1
                if abort_on_error:
                    result.total_time_seconds = time.time() - started
                    logger.error(
                        self._log_context.format_msg(
                            "Aborting load after failed record {}: {}".format(
                                record_result.vulnerability, record_result.error
                            )
                        )
                    )
                    raise record_result.exception

            processed = result.loaded_count + result.failed_count
            if self.progress_interval and processed % self.progress_interval == 0:
                logger.info(
                    self._log_context.format_msg(
                        "Processed {} records ({} failed)".format(
                            processed, result.failed_count
                        )
                    )
                )

        result.total_time_seconds = time.time() - started
        result.status = (
            RecordStatus.success if result.failed_count == 0 else RecordStatus.failure
        )
        logger.info(
            self._log_context.format_msg(
                "Load complete: loaded={} failed={} duration={:.2f}s".format(
                    result.loaded_count, result.failed_count, result.total_time_seconds
                )
            )
        )
        return result

    def finalize(self, build_timestamp=None):
        """
        Write the metadata row marking the database as built with this schema version.
        """
        with session_scope() as db:
            record = db_metadata.set_metadata(
                db, version.schema_version, build_timestamp=build_timestamp
            )
            logger.info(self._log_context.format_msg("Database finalized: {}".format(record)))
            return record.schema_version, record.build_timestamp

