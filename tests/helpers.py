"""Builders for ADMX/ADML documents, GPO folders and registry entries."""

from pathlib import Path

from gpotools.policy.polfile import encode_pol
from gpotools.policy.types import REG_SZ, RegistryPolicyEntry, Scope

ADMX_NS = "http://schemas.microsoft.com/GroupPolicy/2006/07/PolicyDefinitions"

CHROME_KEY = r"Software\Policies\Google\Chrome"
GPO_GUID = "{31B2F340-016D-11D2-945F-00C04FB984F9}"


def entry(key, value_name, value_type=REG_SZ, data="1", scope=Scope.MACHINE):
    return RegistryPolicyEntry(
        registry_key=key,
        value_name=value_name,
        value_type=value_type,
        value_data=data,
        scope=scope,
    )


def policy_xml(
    name,
    key=None,
    value_name=None,
    display_name=None,
    policy_class="Machine",
    elements="",
):
    """A <policy> element; display_name defaults to $(string.<name>)."""
    attrs = [f'name="{name}"', f'class="{policy_class}"']
    attrs.append(f'displayName="{display_name if display_name is not None else f"$(string.{name})"}"')
    if key is not None:
        attrs.append(f'key="{key}"')
    if value_name is not None:
        attrs.append(f'valueName="{value_name}"')
    body = f"<elements>{elements}</elements>" if elements else ""
    return f"<policy {' '.join(attrs)}><parentCategory ref=\"Root\"/>{body}</policy>"


def admx_xml(*policies, prefix="test"):
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        f'<policyDefinitions xmlns="{ADMX_NS}" revision="1.0" schemaVersion="1.0">'
        f'<policyNamespaces><target prefix="{prefix}" namespace="Test.Policies.{prefix}"/></policyNamespaces>'
        '<resources minRequiredRevision="1.0"/>'
        f"<policies>{''.join(policies)}</policies>"
        "</policyDefinitions>"
    )


def adml_xml(strings):
    rows = "".join(f'<string id="{k}">{v}</string>' for k, v in strings.items())
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        f'<policyDefinitionResources xmlns="{ADMX_NS}" revision="1.0" schemaVersion="1.0">'
        "<displayName/><description/>"
        f"<resources><stringTable>{rows}</stringTable></resources>"
        "</policyDefinitionResources>"
    )


def write_admx(directory, file_name, *policies):
    path = Path(directory) / file_name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(admx_xml(*policies), encoding="utf-8")
    return path


def write_adml(directory, language, file_name, strings=None):
    path = Path(directory) / language / file_name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(adml_xml(strings or {}), encoding="utf-8")
    return path


def write_gpo(policies_dir, machine=None, user=None, guid=GPO_GUID, display_name=None):
    """Create a GPO folder with registry.pol files for the given entries.

    machine/user are lists of (key, value_name, type, data) tuples, raw
    bytes, or None to leave that scope without a policy file.
    """
    gpo_dir = Path(policies_dir) / guid
    gpo_dir.mkdir(parents=True, exist_ok=True)
    for scope_name, content in (("Machine", machine), ("User", user)):
        if content is None:
            continue
        scope_dir = gpo_dir / scope_name
        scope_dir.mkdir(exist_ok=True)
        data = content if isinstance(content, bytes) else encode_pol(content)
        (scope_dir / "registry.pol").write_bytes(data)
    if display_name is not None:
        (gpo_dir / "GPT.INI").write_text(
            f"[General]\nVersion=65537\ndisplayName={display_name}\n"
        )
    return gpo_dir
