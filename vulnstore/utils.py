"""
Generic utilities
"""
import datetime
import re
from collections import namedtuple

from vulnstore.common.errors import ValidationError

CPE23_PREFIX = "cpe:2.3"
CPE_ANY = "*"

# Version strings are decomposed into a numeric major/minor pair when possible (e.g. "8.6.1" -> 8, 6), everything else
# (e.g. "edge", "unstable") is carried as a label
VERSION_REGEX = re.compile(r"^(\d+)(?:\.(\d+))?")

VersionParts = namedtuple("VersionParts", ["major", "minor", "label"])


def ensure_bytes(obj):
    return obj.encode("utf-8") if type(obj) != bytes else obj


def ensure_str(obj):
    return str(obj, "utf-8") if type(obj) != str else obj


rfc3339_date_fmt = "%Y-%m-%dT%H:%M:%SZ"
rfc3339_date_input_fmts = [
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%Y-%m-%dT%H:%M:%S:%fZ",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f%z",
]


def rfc3339str_to_datetime(rfc3339_str):
    """
    Convert the rfc3339 formatted string to a datetime object with tzinfo explicitly set to utc. Raises an exception if the parsing fails.

    :param rfc3339_str:
    :return:
    """

    ret = None
    for fmt in rfc3339_date_input_fmts:
        try:
            ret = datetime.datetime.strptime(rfc3339_str, fmt)
        except ValueError:
            continue

        # naive inputs are utc, explicit offsets are normalized to utc
        if ret.tzinfo is None:
            ret = ret.replace(tzinfo=datetime.timezone.utc)
        else:
            ret = ret.astimezone(datetime.timezone.utc)
        break

    if ret is None:
        raise ValueError(
            "could not convert input value ({}) into datetime using formats in {}".format(
                rfc3339_str, rfc3339_date_input_fmts
            )
        )

    return ret


def datetime_to_rfc3339(dt_obj):
    """
    Simple utility function. Expects a UTC input, does no tz conversion

    :param dt_obj:
    :return:
    """

    return dt_obj.strftime(rfc3339_date_fmt)


def split_version(version):
    """
    Decompose a release version string into its major, minor and label parts.

    "8.6.1" -> ("8", "6", ""), "2023" -> ("2023", "", ""), "edge" -> ("", "", "edge")

    :param version: version string, may be None
    :return: VersionParts tuple of strings, unset parts are empty strings
    """
    if not version:
        return VersionParts("", "", "")

    patt = VERSION_REGEX.match(version)
    if patt:
        major, minor = patt.groups()
        return VersionParts(major, minor or "", "")

    return VersionParts("", "", version)


def split_cpe_components(cpe_str):
    """
    Split a CPE 2.3 formatted string on its unescaped ':' delimiters. Escape sequences (e.g. '\\:') are kept as-is
    inside the component they belong to.

    :param cpe_str:
    :return: list of components
    """
    components = []
    current = []
    pos = 0
    while pos < len(cpe_str):
        char = cpe_str[pos]
        if char == "\\" and pos + 1 < len(cpe_str):
            current.append(char + cpe_str[pos + 1])
            pos += 2
            continue

        if char == ":":
            components.append("".join(current))
            current = []
        else:
            current.append(char)
        pos += 1

    components.append("".join(current))
    return components


class CPE(object):
    """
    A version-less CPE made of the nine descriptive attributes tracked for dimension records.

    Renders as cpe:2.3:<part>:<vendor>:<product>:<edition>:<language>:<software_edition>:<target_hardware>:<target_software>:<other>
    with empty attributes rendered as '*'.
    """

    fields = (
        "part",
        "vendor",
        "product",
        "edition",
        "language",
        "software_edition",
        "target_hardware",
        "target_software",
        "other",
    )

    def __init__(
        self,
        part="",
        vendor="",
        product="",
        edition="",
        language="",
        software_edition="",
        target_hardware="",
        target_software="",
        other="",
    ):
        self.part = part or ""
        self.vendor = vendor or ""
        self.product = product or ""
        self.edition = edition or ""
        self.language = language or ""
        self.software_edition = software_edition or ""
        self.target_hardware = target_hardware or ""
        self.target_software = target_software or ""
        self.other = other or ""

    def as_tuple(self):
        return tuple(getattr(self, f) for f in self.fields)

    def as_dict(self):
        return {f: getattr(self, f) for f in self.fields}

    def __hash__(self):
        return hash(tuple(x.lower() for x in self.as_tuple()))

    def __eq__(self, other):
        if not isinstance(other, CPE):
            return False
        return [x.lower() for x in self.as_tuple()] == [
            x.lower() for x in other.as_tuple()
        ]

    def __repr__(self):
        return "CPE: " + ", ".join(
            "{}={}".format(f, getattr(self, f)) for f in self.fields
        )

    def __str__(self):
        return self.as_cpe23_fs()

    @staticmethod
    def _unbind(component):
        return "" if component == CPE_ANY else component

    @staticmethod
    def from_cpe23_fs(cpe23_fs):
        """
        Takes either the 9 attribute rendering produced by as_cpe23_fs() or a full 13 component CPE 2.3 formatted
        string (cpe:2.3:part:vendor:product:version:update:edition:language:sw_edition:target_sw:target_hw:other) and
        returns a CPE object. Version and update are not tracked and are dropped.

        :param cpe23_fs:
        :return: CPE
        """
        if not cpe23_fs or not isinstance(cpe23_fs, str):
            raise ValidationError("invalid CPE: {!r}".format(cpe23_fs))

        cpe_parts = split_cpe_components(cpe23_fs.strip())
        if cpe_parts[:2] != ["cpe", "2.3"]:
            raise ValidationError(
                "invalid CPE: {} does not start with {}".format(cpe23_fs, CPE23_PREFIX)
            )

        unbind = CPE._unbind
        if len(cpe_parts) == 11:
            return CPE(*[unbind(x) for x in cpe_parts[2:]])
        elif len(cpe_parts) == 13:
            return CPE(
                part=unbind(cpe_parts[2]),
                vendor=unbind(cpe_parts[3]),
                product=unbind(cpe_parts[4]),
                edition=unbind(cpe_parts[7]),
                language=unbind(cpe_parts[8]),
                software_edition=unbind(cpe_parts[9]),
                target_software=unbind(cpe_parts[10]),
                target_hardware=unbind(cpe_parts[11]),
                other=unbind(cpe_parts[12]),
            )

        raise ValidationError(
            "invalid CPE: {} has {} components, expected 11 or 13".format(
                cpe23_fs, len(cpe_parts)
            )
        )

    def as_cpe23_fs(self):
        return ":".join(
            [CPE23_PREFIX] + [x if x else CPE_ANY for x in self.as_tuple()]
        )
