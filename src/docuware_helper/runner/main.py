"""
CLI main entry point.
"""

import argparse
import json
import logging
import math
import sys
from dataclasses import replace
from pathlib import Path

from ..config import Config, create_default_config, load_config
from ..docuware_client import (
    Cabinet,
    DocuwareClient,
    DocuwareDocument,
    DocuwareError,
    document_link,
)
from ..query import PredicateSyntaxError, QuerySyntaxError

logger = logging.getLogger(__name__)

MODES = ("gentoken", "gencookie", "lsorgs", "lscabinets", "get", "update", "download", "upload")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="docuware-helper",
        description="Query, update, upload and download DocuWare documents",
        # -h is the DocuWare host id
        add_help=False,
    )
    parser.add_argument("--help", action="help", help="Show this help message and exit")

    parser.add_argument(
        "--config",
        type=Path,
        default=Path("docuware.yaml"),
        help="Path to config file (default: docuware.yaml)",
    )
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Write a default config file to --config and exit",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    parser.add_argument(
        "-m",
        "--mode",
        type=str,
        help=f"Operation: {', '.join(MODES)}",
    )
    parser.add_argument("-e", "--endpoint", type=str, help="DocuWare URL")

    auth = parser.add_argument_group("authentication")
    auth.add_argument("-t", "--token", type=str, help="Login token (from gentoken)")
    auth.add_argument("-x", "--cookie", type=str, help="Session cookie (from gencookie)")
    auth.add_argument("-h", "--host-id", dest="host_id", type=str, help="Host id for credential logon")
    auth.add_argument("--username", type=str, help="Username for gentoken/gencookie")
    auth.add_argument("--password", type=str, help="Password for gentoken/gencookie")

    selection = parser.add_argument_group("document selection")
    selection.add_argument("-c", "--cabinet", type=str, help="File cabinet name")
    selection.add_argument("-q", "--query", type=str, help="Server-side query, e.g. \"NAME = [VALUE]\"")
    selection.add_argument(
        "-f",
        "--filter",
        dest="predicate",
        type=str,
        help="Client-side predicate, e.g. \"fields['NAME'] == 'VALUE'\" (fetches the whole cabinet)",
    )
    selection.add_argument("-i", "--id", dest="document_id", type=str, help="Document id")

    payload = parser.add_argument_group("mode-specific")
    payload.add_argument(
        "-u",
        dest="u",
        type=str,
        help="Username (gentoken/gencookie) or update JSON (update)",
    )
    payload.add_argument(
        "-p",
        dest="p",
        type=str,
        help="Password (gentoken/gencookie), file to upload (upload) or output folder (download)",
    )
    payload.add_argument("--update-json", type=str, help="Fields to update, e.g. \"{'NAME': 'VALUE'}\"")
    payload.add_argument("--upload-file", type=Path, help="File to upload")
    payload.add_argument("--output-dir", type=Path, help="Folder for downloaded documents")
    payload.add_argument("-n", "--name-prefix", type=str, help="Download file name prefix")

    retry = parser.add_argument_group("retry")
    retry.add_argument("--retrymax", type=str, help="Maximum attempts per request")
    retry.add_argument("--retrybase", type=str, help="Base delay between attempts (seconds)")
    retry.add_argument("--retryrandmin", type=str, help="Minimum random delay (seconds)")
    retry.add_argument("--retryrandmax", type=str, help="Maximum random delay (seconds)")

    return parser


def _as_number(value: str | None, flag: str) -> float | None:
    if value is None:
        return None
    try:
        number = float(value)
    except ValueError:
        number = None
    if number is None or not math.isfinite(number):
        logger.warning(f"Ignoring non-numeric --{flag}={value!r}")
        return None
    return number


def apply_cli_overrides(config: Config, parsed: argparse.Namespace) -> Config:
    """Layer command-line values over the loaded config."""
    docuware = replace(
        config.docuware,
        endpoint=parsed.endpoint or config.docuware.endpoint,
        token=parsed.token or config.docuware.token,
        cookie=parsed.cookie or config.docuware.cookie,
    )
    retry = config.retry.with_overrides(
        max_attempts=_as_number(parsed.retrymax, "retrymax"),
        base_delay_seconds=_as_number(parsed.retrybase, "retrybase"),
        min_jitter_seconds=_as_number(parsed.retryrandmin, "retryrandmin"),
        max_jitter_seconds=_as_number(parsed.retryrandmax, "retryrandmax"),
    )
    return Config(docuware=docuware, retry=retry)


def _role(parsed: argparse.Namespace, named: str, short: str):
    """Value of a dedicated option, falling back to the overloaded short flag."""
    value = getattr(parsed, named)
    return value if value else getattr(parsed, short)


def create_client(config: Config) -> DocuwareClient:
    return DocuwareClient(
        endpoint=config.docuware.endpoint,
        retry_policy=config.retry,
        timeout=config.docuware.timeout_seconds,
        organization=config.docuware.organization,
        organization_id=config.docuware.organization_id,
        document_id_field=config.docuware.document_id_field,
    )


def _read_credentials(parsed: argparse.Namespace) -> tuple[str, str, str] | None:
    username = _role(parsed, "username", "u")
    password = _role(parsed, "password", "p")
    if not username:
        print("❌ -u username not defined.")
        return None
    if not password:
        print("❌ -p password not defined.")
        return None
    if not parsed.host_id:
        print("❌ -h host id not defined.")
        return None
    return username, password, parsed.host_id


def cmd_gentoken(client: DocuwareClient, parsed: argparse.Namespace) -> int:
    """Print a reusable login token."""
    creds = _read_credentials(parsed)
    if creds is None:
        return 1
    print(client.generate_token(*creds))
    return 0


def cmd_gencookie(client: DocuwareClient, parsed: argparse.Namespace) -> int:
    """Print a session cookie for reuse with -x."""
    creds = _read_credentials(parsed)
    if creds is None:
        return 1
    print(client.init_auth_from_creds(*creds))
    return 0


def authenticate(client: DocuwareClient, config: Config) -> bool:
    """Apply the configured token or cookie. Exactly one is expected."""
    token = config.docuware.token
    cookie = config.docuware.cookie
    if not token and not cookie:
        print("❌ neither token -t nor cookie -x defined.")
        return False

    if cookie:
        if token:
            print("⚠️  both cookie and token were provided... using existing cookie.")
            logger.warning("Both token and cookie supplied, using the cookie")
        client.use_cookie(cookie)
    else:
        client.init_auth_from_token(token)
    return True


def cmd_lsorgs(client: DocuwareClient) -> int:
    for org in client.get_organizations():
        print(f"{org.get('Name')}: {org.get('Id')}")
    return 0


def cmd_lscabinets(cabinets: list[Cabinet]) -> int:
    for cabinet in cabinets:
        print(f"{cabinet.name}: {cabinet.id}")
    return 0


def resolve_cabinet(
    client: DocuwareClient, cabinets: list[Cabinet], cabinet_name: str
) -> Cabinet | None:
    matches = client.find_cabinets(cabinet_name, cabinets)
    if not matches:
        print(f"❌ No matching cabinet(s) for \"{cabinet_name}\".")
        return None
    if len(matches) > 1:
        logger.warning(
            "Multiple cabinets named %r (%s), using %s",
            cabinet_name, ", ".join(c.id for c in matches), matches[0].id,
        )
        print(
            f"⚠️  WARNING: There are multiple cabinets with the name \"{cabinet_name}\", "
            "using the first one."
        )
    return matches[0]


def cmd_upload(client: DocuwareClient, cabinet: Cabinet, parsed: argparse.Namespace) -> int:
    """Upload a file into the cabinet."""
    read_path = _role(parsed, "upload_file", "p")
    if not read_path:
        print("❌ -p read path not specified.")
        return 1
    read_path = Path(read_path)
    if not read_path.is_file():
        print(f"❌ -p read path \"{read_path}\" is not a file.")
        return 1

    data = client.upload_document(cabinet.id, read_path)

    fields = {f.get("FieldName"): f.get("Item") for f in data.get("Fields", [])}
    print(f"{client.document_id_field}: {fields.get(client.document_id_field)}")
    link = document_link(client, data)
    if link:
        print(f"LINK: {link}")
    print("File uploaded")
    return 0


def resolve_documents(
    client: DocuwareClient, cabinet: Cabinet, parsed: argparse.Namespace, mode: str
) -> list[DocuwareDocument] | None:
    """Documents selected by -i, -q or -f (or the whole cabinet). None means halt."""
    if parsed.document_id:
        return [client.get_document(cabinet.id, parsed.document_id)]
    if parsed.query:
        return client.get_documents_with_query(cabinet.id, parsed.query)
    if parsed.predicate:
        return client.get_documents_with_predicate(cabinet.id, parsed.predicate)
    if mode != "update":
        return client.get_all_documents_from_cabinet(cabinet.id)

    print("❌ None of -f -q -i defined.")
    return None


def parse_update_json(raw: str | None) -> dict | None:
    """Parse update fields written with single quotes. None when invalid."""
    if not raw:
        print("❌ -u update json not defined.")
        return None
    try:
        fields = json.loads(raw.replace("'", '"'))
    except ValueError:
        print("❌ -u is not valid json (remember to use single quotes).")
        return None
    if not isinstance(fields, dict):
        print("❌ -u must be a JSON object of field names to values.")
        return None
    return fields


def cmd_get(documents: list[DocuwareDocument]) -> int:
    print(json.dumps([doc.to_dict() for doc in documents]))
    return 0


def cmd_update(
    client: DocuwareClient,
    cabinet: Cabinet,
    documents: list[DocuwareDocument],
    parsed: argparse.Namespace,
) -> int:
    """Update the fields of exactly one document."""
    fields = parse_update_json(_role(parsed, "update_json", "u"))
    if fields is None:
        return 1

    if len(documents) > 1:
        print("❌ Multiple matching documents found, tighten the filter.")
        return 1

    print("Updating document...")
    client.update_document(cabinet.id, documents[0].id, fields)
    print("Completed document update.")
    return 0


def cmd_download(
    client: DocuwareClient,
    cabinet: Cabinet,
    documents: list[DocuwareDocument],
    parsed: argparse.Namespace,
) -> int:
    """Download every selected document as <prefix>_<index>.pdf."""
    write_folder = _role(parsed, "output_dir", "p")
    file_prefix = parsed.name_prefix or ""

    if not write_folder:
        print("❌ -p write folder path not specified.")
        return 1
    if not file_prefix:
        print("❌ -n file name prefix not specified.")
        return 1

    write_folder = Path(write_folder)
    write_folder.mkdir(parents=True, exist_ok=True)

    print(f"Starting downloads for \"{cabinet.name}\"")
    for index, doc in enumerate(documents):
        title = f"{file_prefix}_{index}.pdf"
        client.save_document(cabinet.id, doc.id, write_folder / title)
        print(f"File \"{title}\" downloaded.")
    print(f"Downloads completed for \"{cabinet.name}\"")
    return 0


def execute(config: Config, parsed: argparse.Namespace) -> int:
    """Run one CLI invocation; every missing input halts with a message."""
    mode = parsed.mode
    if not mode:
        print("❌ -m mode not defined.")
        return 1
    if mode not in MODES:
        print(f"❌ Mode \"{mode}\" not supported, use one of {'/'.join(MODES)}.")
        return 1

    if not config.docuware.endpoint:
        print("❌ -e endpoint not defined.")
        return 1

    client = create_client(config)

    if mode == "gentoken":
        return cmd_gentoken(client, parsed)
    if mode == "gencookie":
        return cmd_gencookie(client, parsed)

    if not authenticate(client, config):
        return 1

    if mode == "lsorgs":
        return cmd_lsorgs(client)

    cabinets = client.get_file_cabinets()
    if mode == "lscabinets":
        return cmd_lscabinets(cabinets)

    if not parsed.cabinet:
        print("❌ -c cabinet name not defined.")
        return 1
    cabinet = resolve_cabinet(client, cabinets, parsed.cabinet)
    if cabinet is None:
        return 1

    if mode == "upload":
        return cmd_upload(client, cabinet, parsed)

    print("Fetching documents...")
    documents = resolve_documents(client, cabinet, parsed, mode)
    if documents is None:
        return 1
    print("Completed document fetching.")

    if not documents:
        print("No matching documents found.")
        return 0

    if mode == "get":
        return cmd_get(documents)
    elif mode == "update":
        return cmd_update(client, cabinet, documents, parsed)
    else:
        return cmd_download(client, cabinet, documents, parsed)


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    if parsed.init_config:
        create_default_config(parsed.config)
        print(f"✓ Wrote default config to {parsed.config}")
        return 0

    # Load config
    try:
        config = apply_cli_overrides(load_config(parsed.config), parsed)
    except Exception as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    errors = config.validate()
    if errors:
        print(f"❌ Invalid configuration: {'; '.join(errors)}")
        return 1

    try:
        return execute(config, parsed)
    except (QuerySyntaxError, PredicateSyntaxError) as e:
        print(f"❌ {e}")
        return 1
    except DocuwareError as e:
        logger.debug("DocuWare call failed", exc_info=True)
        print(f"❌ {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
