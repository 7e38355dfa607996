from vulnstore.db import Provider
from vulnstore.db.entities.common import to_utc
from vulnstore.db.results import FindResult, find_or_insert
from vulnstore.subsys import logger

# fields that make up the current state of a provider, if all match then an add is a no-op
PROVIDER_STATE_FIELDS = ("version", "processor", "date_captured", "input_digest")


def _state_of(version, processor, date_captured, input_digest):
    return {
        "version": version,
        "processor": processor,
        "date_captured": to_utc(date_captured),
        "input_digest": input_digest,
    }


def find_or_create_provider(
    session,
    provider_id,
    version=None,
    processor=None,
    date_captured=None,
    input_digest=None,
) -> FindResult:
    """
    There is exactly one row per provider id, reflecting the latest observed state of that provider. An existing row
    is overwritten in place when any of its state fields differ.

    :return: FindResult, created=False when an existing row was reused (updated or not)
    """
    incoming = _state_of(version, processor, date_captured, input_digest)

    result = find_or_insert(
        session,
        lambda: session.get(Provider, provider_id),
        lambda: Provider(id=provider_id, **incoming),
        "provider {}".format(provider_id),
    )
    if result.created:
        return result

    existing = result.entity
    current = {f: getattr(existing, f) for f in PROVIDER_STATE_FIELDS}
    current["date_captured"] = to_utc(current["date_captured"])

    if current != incoming:
        logger.info(
            "overwriting provider {} state: existing={} incoming={}".format(
                provider_id, current, incoming
            )
        )
        existing.update(incoming)
        session.flush()

    return result


def get(session, provider_id):
    return session.get(Provider, provider_id)


def get_all(session):
    return session.query(Provider).order_by(Provider.id).all()
