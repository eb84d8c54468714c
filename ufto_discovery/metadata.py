"""Metadata extraction from UFT test documents.

GUI tests keep their description, action list and action dependency graph in the
``ComponentInfo`` stream of ``Test.tsp``; each action's parameters live in
``<test>/<action>/resource.mtr``. API tests describe themselves in plain
``actions.xml``.

All XML goes through :func:`parse_document`, which drives expat directly and
refuses entity declarations, so no entity is ever expanded or fetched.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Tuple
from xml.etree import ElementTree as ET
from xml.parsers import expat

from .classifier import API_ACTIONS_FILE, GUI_TEST_FILE, GUI_TEST_SUFFIX, RESOURCE_MTR_FILE
from .container import extract_xml
from .errors import ContainerDecodeError, DocumentParseError, MissingResourceWarning
from .logging import get_logger
from .models import ParamDirection, TestKind, UftoTestAction, UftoTestParam

logger = get_logger("metadata")

ACTION_0 = "action0"
MAIN_ACTION = "MainAction"

_DEPENDENCY_TYPE = "1"
_DEPENDENCY_KIND = "16"
_DEPENDENCY_SCOPE = "0"


def _refuse_entity(*_args: object) -> None:
    raise DocumentParseError("Entity declarations are not allowed")


def _refuse_external_entity(*_args: object) -> int:
    raise DocumentParseError("External entity references are not allowed")


def parse_document(content: str | bytes, *, source: str = "<document>") -> ET.Element:
    """Parse XML into an element tree with entity handling disabled.

    ``str`` input is treated as already decoded text; any encoding named in its
    XML declaration is ignored. ``bytes`` input is decoded by expat.
    """
    builder = ET.TreeBuilder()
    if isinstance(content, str):
        parser = expat.ParserCreate(encoding="utf-8")
        payload = content.encode("utf-8")
    else:
        parser = expat.ParserCreate()
        payload = content
    parser.buffer_text = True
    parser.SetParamEntityParsing(expat.XML_PARAM_ENTITY_PARSING_NEVER)
    parser.EntityDeclHandler = _refuse_entity
    parser.UnparsedEntityDeclHandler = _refuse_entity
    parser.ExternalEntityRefHandler = _refuse_external_entity
    parser.StartElementHandler = builder.start
    parser.EndElementHandler = builder.end
    parser.CharacterDataHandler = builder.data

    try:
        parser.Parse(payload, True)
    except expat.ExpatError as exc:
        raise DocumentParseError(f"{source}: invalid XML content: {exc}") from exc
    except DocumentParseError as exc:
        raise DocumentParseError(f"{source}: {exc}") from exc

    root = builder.close()
    if root is None:
        raise DocumentParseError(f"{source}: no document element")
    return root


def reject_entity_elements(root: ET.Element, *, source: str = "<document>") -> None:
    if root.tag == "ENTITY" or next(root.iter("ENTITY"), None) is not None:
        raise DocumentParseError(f"{source}: external entities detected in XML")


def element_text(element: Optional[ET.Element]) -> str:
    if element is None:
        return ""
    return "".join(element.itertext())


def first_text(root: ET.Element, tag: str) -> Optional[str]:
    element = next(root.iter(tag), None)
    return None if element is None else element_text(element)


# ----------------------------------------------------------------------
# Document loading


def _find_child(directory: Path, file_name: str) -> Optional[Path]:
    exact = directory / file_name
    if exact.is_file():
        return exact
    lowered = file_name.lower()
    for child in sorted(directory.iterdir()):
        if child.name.lower() == lowered and child.is_file():
            return child
    return None


def find_gui_test_file(test_dir: Path) -> Optional[Path]:
    """Return ``Test.tsp`` or, failing that, the first ``*.tsp`` in ``test_dir``."""
    preferred = _find_child(test_dir, GUI_TEST_FILE)
    if preferred is not None:
        return preferred
    for child in sorted(test_dir.iterdir()):
        if child.suffix.lower() == GUI_TEST_SUFFIX and child.is_file():
            return child
    return None


def load_gui_document(test_dir: Path) -> ET.Element:
    """Decode and parse the ComponentInfo XML of a GUI test."""
    tsp_file = find_gui_test_file(test_dir)
    if tsp_file is None:
        raise DocumentParseError(f"No document parsed: {test_dir} holds no {GUI_TEST_SUFFIX} file")

    xml_content = extract_xml(tsp_file)
    if not xml_content:
        raise DocumentParseError(f"No XML content found in {tsp_file}")

    root = parse_document(xml_content, source=str(tsp_file))
    reject_entity_elements(root, source=str(tsp_file))
    return root


def load_api_document(test_dir: Path) -> Optional[ET.Element]:
    """Parse ``actions.xml`` of an API test; ``None`` when the file is absent."""
    actions_file = _find_child(test_dir, API_ACTIONS_FILE)
    if actions_file is None:
        logger.debug("No %s in %s", API_ACTIONS_FILE, test_dir)
        return None
    try:
        content = actions_file.read_bytes()
    except OSError as exc:
        raise DocumentParseError(f"Cannot read {actions_file}: {exc}") from exc
    return parse_document(content, source=str(actions_file))


def load_document(test_dir: Path, kind: TestKind) -> Optional[ET.Element]:
    if kind is TestKind.GUI:
        return load_gui_document(test_dir)
    if kind is TestKind.API:
        return load_api_document(test_dir)
    return None


# ----------------------------------------------------------------------
# Descriptions


def document_description(document: Optional[ET.Element], kind: TestKind) -> str:
    """Return the trimmed description stored in a test document."""
    if document is None or kind is TestKind.NONE:
        return ""
    if kind is TestKind.GUI:
        description = first_text(document, "Description") or ""
    else:
        description = _api_description(document) or ""
    return description.strip()


def _api_description(document: ET.Element) -> Optional[str]:
    for action in document.iter("Action"):
        if action.get("internalName") == MAIN_ACTION:
            description = action.get("description")
            if description is not None:
                return description
    return None


def to_html_description(description: str) -> str:
    """Render multi-line text as one HTML paragraph per line."""
    if "\n" not in description:
        return description
    paragraphs = "".join(f"<p>{line}</p>\n" for line in description.split("\n"))
    return f"<html><body>{paragraphs}</body></html>"


# ----------------------------------------------------------------------
# Actions


def index_actions(document: ET.Element, test_name: str) -> Dict[str, UftoTestAction]:
    """First pass: collect actions by name in document order, skipping action0."""
    actions: Dict[str, UftoTestAction] = {}
    for component in document.iter("Component"):
        name = element_text(component).strip()
        if not name or name.lower() == ACTION_0 or name in actions:
            continue
        actions[name] = UftoTestAction(name=name, test_name=test_name)
    return actions


def resolve_logical_names(
    document: ET.Element, actions: Dict[str, UftoTestAction], path_prefix: str
) -> None:
    """Second pass: attach logical names from the dependency graph and set paths."""
    for dependency in document.iter("Dependency"):
        logical_name = dependency.get("Logical")
        if (
            dependency.get("Type") != _DEPENDENCY_TYPE
            or dependency.get("Kind") != _DEPENDENCY_KIND
            or dependency.get("Scope") != _DEPENDENCY_SCOPE
            or not logical_name
        ):
            continue
        action_name, separator, _ = element_text(dependency).partition("\\")
        if not separator or action_name.lower() == ACTION_0:
            continue
        action = actions.get(action_name)
        if action is not None:
            action.logical_name = logical_name

    for action in actions.values():
        action.repository_path = f"{path_prefix}\\{action.name}:{action.logical_name or action.name}"


def extract_actions(
    document: ET.Element, *, test_name: str, path_prefix: str, test_dir: Path
) -> List[UftoTestAction]:
    actions = index_actions(document, test_name)
    resolve_logical_names(document, actions, path_prefix)
    for action in actions.values():
        read_action_parameters(test_dir, action)
    return list(actions.values())


# ----------------------------------------------------------------------
# Parameters


def locate_action_resource(test_dir: Path, action_name: str) -> Path:
    folder = test_dir / action_name
    if not folder.is_dir():
        raise MissingResourceWarning(f"folder for action {action_name} does not exist")
    resource = _find_child(folder, RESOURCE_MTR_FILE)
    if resource is None:
        raise MissingResourceWarning(f"{RESOURCE_MTR_FILE} file for action {action_name} does not exist")
    return resource


def read_action_parameters(test_dir: Path, action: UftoTestAction) -> None:
    """Fill ``action`` from its resource.mtr; problems only affect this action."""
    try:
        resource = locate_action_resource(test_dir, action.name)
    except MissingResourceWarning as warning:
        logger.warning("%s", warning)
        action.parameters = []
        return

    try:
        parameters, description = parse_action_resource(resource)
    except (ContainerDecodeError, DocumentParseError) as exc:
        logger.error("Failed to parse parameters of action %s: %s", action.name, exc)
        action.parameters = []
        return

    action.parameters = parameters
    action.description = description


def parse_action_resource(resource: Path) -> Tuple[List[UftoTestParam], str]:
    source = str(resource)
    document = parse_document(extract_xml(resource), source=source)
    reject_entity_elements(document, source=source)

    parameters: List[UftoTestParam] = []
    collection = next(document.iter("ArgumentsCollection"), None)
    if collection is not None:
        for argument in collection:
            default_element = next(argument.iter("ArgDefaultValue"), None)
            parameters.append(
                UftoTestParam(
                    name=first_text(argument, "ArgName") or "",
                    direction=_parse_direction(first_text(argument, "ArgDirection"), source),
                    default_value=None if default_element is None else element_text(default_element),
                )
            )

    description = (first_text(document, "Description") or "").strip()
    return parameters, description


def _parse_direction(raw: Optional[str], source: str) -> ParamDirection:
    text = (raw or "0").strip() or "0"
    try:
        return ParamDirection(int(text))
    except ValueError as exc:
        raise DocumentParseError(f"{source}: unsupported ArgDirection {text!r}") from exc


__all__ = [
    "extract_actions",
    "find_gui_test_file",
    "index_actions",
    "load_api_document",
    "load_document",
    "load_gui_document",
    "parse_action_resource",
    "parse_document",
    "read_action_parameters",
    "reject_entity_elements",
    "resolve_logical_names",
    "document_description",
    "to_html_description",
]
