"""
Namespaces group vulnerability records by data source and the ecosystem or OS release they apply to, e.g.
"nvd:cpe", "github:language:python" or "ubuntu:distro:ubuntu:22.04".
"""
from vulnstore.common.errors import ValidationError
from vulnstore.utils import split_version

NVD_PROVIDER = "nvd"
GITHUB_PROVIDER = "github"

NVD_NAMESPACE = "nvd:cpe"

# package ecosystem -> language used in github namespaces
LANGUAGE_BY_ECOSYSTEM = {
    "golang": "go",
    "go-module": "go",
    "composer": "php",
    "php-composer": "php",
    "cargo": "rust",
    "rust-crate": "rust",
    "pub": "dart",
    "dart-pub": "dart",
    "nuget": "dotnet",
    "maven": "java",
    "swifturl": "swift",
    "npm": "javascript",
    "node": "javascript",
    "pypi": "python",
    "pip": "python",
    "rubygems": "ruby",
    "gem": "ruby",
}

# os name -> distro slug, where they differ
DISTRO_SLUGS = {
    "oracle": "oraclelinux",
}

# distros whose namespaces only carry the major version
MAJOR_VERSION_ONLY_DISTROS = {"redhat", "oracle"}

MARINER = "mariner"
AZURELINUX = "azurelinux"
AZURELINUX_FIRST_MAJOR = 3


def language_of(ecosystem):
    return LANGUAGE_BY_ECOSYSTEM.get(ecosystem.lower(), ecosystem)


def distro_slug(os_name, os_version):
    if os_name == MARINER:
        major = split_version(os_version).major
        if major and int(major) >= AZURELINUX_FIRST_MAJOR:
            return AZURELINUX

    return DISTRO_SLUGS.get(os_name, os_name)


def distro_version_label(os_name, os_version):
    if os_name in MAJOR_VERSION_ONLY_DISTROS:
        return os_version.split(".", 1)[0]
    return os_version


def namespace(provider, ecosystem=None, os_name=None, os_version=None):
    """
    Derive the namespace for a record from the provider that supplied it and the ecosystem or OS release it affects.

    The distro namespace prefix is taken from the os name rather than the provider, since some providers (e.g.
    "rhel") publish under a different os family name ("redhat").

    :param provider: provider id, e.g. "nvd", "github", "ubuntu"
    :param ecosystem: package ecosystem, required for github
    :param os_name: os family name, required for distro providers
    :param os_version: os release version, required for distro providers
    :return: namespace string
    """
    if not provider:
        raise ValidationError("a provider is required to derive a namespace")

    if provider == NVD_PROVIDER:
        return NVD_NAMESPACE

    if provider == GITHUB_PROVIDER:
        if not ecosystem:
            raise ValidationError(
                "an ecosystem is required to derive a namespace for provider {}".format(
                    provider
                )
            )
        return "{}:language:{}".format(GITHUB_PROVIDER, language_of(ecosystem))

    if not os_name or not os_version:
        raise ValidationError(
            "an os name and version are required to derive a namespace for provider {} (os_name={!r}, os_version={!r})".format(
                provider, os_name, os_version
            )
        )

    return "{}:distro:{}:{}".format(
        os_name,
        distro_slug(os_name, os_version),
        distro_version_label(os_name, os_version),
    )


def namespace_for_affected_package(handle):
    """
    Namespace of a stored AffectedPackageHandle, with its vulnerability, package and os loaded
    """
    os_name = os_version = None
    if handle.operating_system is not None:
        os_name = handle.operating_system.name
        os_version = handle.operating_system.version()

    return namespace(
        handle.vulnerability.provider_id,
        ecosystem=handle.package.ecosystem if handle.package else None,
        os_name=os_name,
        os_version=os_version,
    )


def namespace_for_affected_cpe(handle):
    """
    CPE handles are not tied to an ecosystem or os release, so only cpe-oriented providers have a namespace for them
    """
    provider_id = handle.vulnerability.provider_id
    if provider_id == NVD_PROVIDER:
        return NVD_NAMESPACE
    return "{}:cpe".format(provider_id)
