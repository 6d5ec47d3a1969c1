# Definition Repository for the reference engine
# Parses BPMN 2.0 XML resources and stores process definitions as RDF

import os
import re
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union, TYPE_CHECKING

from rdflib import Literal, RDF, URIRef

from approvalflow.errors import DefinitionError
from approvalflow.models import Deployment
from .base import BaseStorageService, BPMN, PROC, META, now_iso
from .variables import lookup_path

if TYPE_CHECKING:
    from rdflib import Graph

logger = logging.getLogger(__name__)

BPMN_MODEL_NS = "http://www.omg.org/spec/BPMN/20100524/MODEL"

# Extension namespaces that may carry assignee / candidateUsers attributes
EXTENSION_NAMESPACES = (
    "http://activiti.org/bpmn",
    "http://camunda.org/schema/1.0/bpmn",
    "http://flowable.org/bpmn",
)

BPMN_SUFFIXES = (".bpmn", ".bpmn20.xml", ".xml")

# BPMN tag -> RDF node type
NODE_TYPES = {
    "startEvent": BPMN.StartEvent,
    "endEvent": BPMN.EndEvent,
    "userTask": BPMN.UserTask,
    "task": BPMN.Task,
    "manualTask": BPMN.Task,
}

# Tags that may appear in a process without taking part in execution
IGNORED_TAGS = {
    "sequenceFlow",
    "documentation",
    "extensionElements",
    "laneSet",
    "textAnnotation",
    "association",
    "dataObject",
    "dataObjectReference",
    "incoming",
    "outgoing",
}

_EXPRESSION = re.compile(r"^\$\{\s*([A-Za-z_][\w.]*)\s*\}$")

Resource = Union[str, "os.PathLike[str]", Tuple[str, Union[str, bytes]]]


@dataclass
class ParsedNode:
    """A flow node read from BPMN XML."""

    element_id: str
    tag: str
    name: str = ""
    assignee: Optional[str] = None
    candidate_users: Optional[str] = None


@dataclass
class ParsedProcess:
    """A process element read from BPMN XML."""

    key: str
    name: str
    nodes: Dict[str, ParsedNode] = field(default_factory=dict)
    flows: List[Tuple[str, str]] = field(default_factory=list)


def _local_name(tag: str) -> Tuple[Optional[str], str]:
    """Split an ElementTree tag into namespace and local name."""
    if tag.startswith("{"):
        ns, local = tag[1:].split("}", 1)
        return ns, local
    return None, tag


def _extension_attribute(element: ET.Element, name: str) -> Optional[str]:
    for ns in EXTENSION_NAMESPACES:
        value = element.get(f"{{{ns}}}{name}")
        if value is not None and value.strip():
            return value.strip()
    return None


def parse_bpmn(content: Union[str, bytes], source: str = "<string>") -> List[ParsedProcess]:
    """
    Parse BPMN 2.0 XML into process structures.

    Args:
        content: The XML document
        source: Resource name used in error messages

    Returns:
        One ParsedProcess per bpmn:process element

    Raises:
        DefinitionError: If the XML is malformed, has no process, or uses
            flow elements the reference engine cannot execute
    """
    if isinstance(content, str):
        # ElementTree rejects str input that carries an encoding declaration
        content = content.encode("utf-8")
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise DefinitionError(f"Resource {source} is not valid XML: {e}", source) from e

    processes = []
    for process_el in root.iter(f"{{{BPMN_MODEL_NS}}}process"):
        key = process_el.get("id")
        if not key:
            raise DefinitionError(f"Process in {source} has no id", source)

        process = ParsedProcess(key=key, name=process_el.get("name", key))
        for child in process_el:
            ns, tag = _local_name(child.tag)
            if ns != BPMN_MODEL_NS or tag in IGNORED_TAGS:
                if tag == "sequenceFlow":
                    source_ref = child.get("sourceRef")
                    target_ref = child.get("targetRef")
                    if not source_ref or not target_ref:
                        raise DefinitionError(
                            f"Sequence flow {child.get('id')} in {source} lacks a source or target",
                            source,
                        )
                    process.flows.append((source_ref, target_ref))
                continue
            if tag not in NODE_TYPES:
                raise DefinitionError(
                    f"Element <{tag}> ({child.get('id')}) in {source} is not supported",
                    source,
                )
            element_id = child.get("id")
            if not element_id:
                raise DefinitionError(f"<{tag}> in {source} has no id", source)
            process.nodes[element_id] = ParsedNode(
                element_id=element_id,
                tag=tag,
                name=child.get("name", element_id),
                assignee=_extension_attribute(child, "assignee"),
                candidate_users=_extension_attribute(child, "candidateUsers"),
            )

        for source_ref, target_ref in process.flows:
            for ref in (source_ref, target_ref):
                if ref not in process.nodes:
                    raise DefinitionError(
                        f"Sequence flow in {source} references unknown element {ref}",
                        source,
                    )
        if not any(node.tag == "startEvent" for node in process.nodes.values()):
            raise DefinitionError(f"Process {key} in {source} has no start event", source)

        processes.append(process)

    if not processes:
        raise DefinitionError(f"Resource {source} contains no process", source)
    return processes


def resolve_expression(expression: Optional[str], variables: Dict[str, Any]) -> Optional[Any]:
    """
    Resolve a ``${path}`` expression against instance variables.

    Anything that is not a single expression is returned unchanged.
    """
    if expression is None:
        return None
    match = _EXPRESSION.match(expression.strip())
    if not match:
        return expression
    return lookup_path(variables, match.group(1))


def split_users(value: Optional[Any]) -> List[str]:
    """Turn a resolved candidateUsers value into a list of user ids."""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(user).strip() for user in value if user is not None and str(user).strip()]
    return [user.strip() for user in str(value).split(",") if user.strip()]


def _read_resource(resource: Resource) -> Tuple[str, Optional[Union[str, bytes]]]:
    """Return (name, content) for a resource; content is None for non-BPMN files."""
    if isinstance(resource, tuple):
        name, content = resource
    else:
        name = os.fspath(resource)
        content = None
    if not name.lower().endswith(BPMN_SUFFIXES):
        return name, None
    if content is None:
        if not os.path.exists(name):
            raise DefinitionError(f"Resource {name} does not exist", name)
        with open(name, "rb") as f:
            content = f.read()
    return name, content


class DefinitionRepository:
    """
    Repository for deployed process definitions.

    Each deployment of a process key creates a new version; instances are
    started from the latest version. Definitions are stored in the
    definitions_graph with:
    - Definition metadata (key, name, version, deployment)
    - One node per flow element with its type, name and task assignment
    - Direct node-to-node edges for sequence flows
    """

    def __init__(self, base_storage: BaseStorageService):
        """
        Initialize the definition repository.

        Args:
            base_storage: The base storage service providing graph access
        """
        self._storage = base_storage

    @property
    def _graph(self) -> "Graph":
        """Get the definitions graph."""
        return self._storage.definitions_graph

    def deploy(self, resources: Iterable[Resource], name: str) -> Deployment:
        """
        Deploy BPMN resources under a deployment name.

        Non-BPMN resources (diagram images and the like) are recorded but not
        parsed. All BPMN resources are parsed before anything is stored, so a
        failing resource leaves the repository unchanged.

        Raises:
            DefinitionError: If a resource cannot be read or parsed, or the
                deployment holds no process
        """
        resource_names = []
        parsed: List[ParsedProcess] = []
        for resource in resources:
            resource_name, content = _read_resource(resource)
            resource_names.append(resource_name)
            if content is not None:
                parsed.extend(parse_bpmn(content, resource_name))

        if not parsed:
            raise DefinitionError(f"Deployment {name} contains no BPMN process")

        deployment_id = self._storage.next_id()
        deployed_at = now_iso()
        deployment_uri = PROC[f"deployment/{deployment_id}"]
        self._graph.add((deployment_uri, RDF.type, PROC.Deployment))
        self._graph.add((deployment_uri, META.name, Literal(name)))
        self._graph.add((deployment_uri, META.deployedAt, Literal(deployed_at)))
        for resource_name in resource_names:
            self._graph.add((deployment_uri, META.resource, Literal(resource_name)))

        for process in parsed:
            self._store_process(process, deployment_uri)

        self._storage.save_definitions()

        keys = [process.key for process in parsed]
        logger.info(f"Deployed {name} ({deployment_id}) with processes {keys}")

        return Deployment(
            id=deployment_id,
            name=name,
            definition_keys=keys,
            resources=resource_names,
            deployed_at=deployed_at,
        )

    def _store_process(self, process: ParsedProcess, deployment_uri: URIRef) -> URIRef:
        version = self.latest_version(process.key) + 1
        definition_id = f"{process.key}:{version}"
        definition_uri = PROC[definition_id]

        self._graph.add((definition_uri, RDF.type, PROC.ProcessDefinition))
        self._graph.add((definition_uri, META.key, Literal(process.key)))
        self._graph.add((definition_uri, META.name, Literal(process.name)))
        self._graph.add((definition_uri, META.version, Literal(version)))
        self._graph.add((definition_uri, META.deployment, deployment_uri))

        for node in process.nodes.values():
            node_uri = self.node_uri(definition_id, node.element_id)
            self._graph.add((definition_uri, PROC.hasElement, node_uri))
            self._graph.add((node_uri, RDF.type, NODE_TYPES[node.tag]))
            self._graph.add((node_uri, BPMN.id, Literal(node.element_id)))
            self._graph.add((node_uri, BPMN.name, Literal(node.name)))
            if node.assignee:
                self._graph.add((node_uri, BPMN.assignee, Literal(node.assignee)))
            if node.candidate_users:
                self._graph.add(
                    (node_uri, BPMN.candidateUsers, Literal(node.candidate_users))
                )

        for source_ref, target_ref in process.flows:
            self._graph.add(
                (
                    self.node_uri(definition_id, source_ref),
                    BPMN.flowsTo,
                    self.node_uri(definition_id, target_ref),
                )
            )

        logger.debug(f"Stored definition {definition_id} ({len(process.nodes)} nodes)")
        return definition_uri

    @staticmethod
    def node_uri(definition_id: str, element_id: str) -> URIRef:
        return PROC[f"{definition_id}/{element_id}"]

    # ==================== Lookup ====================

    def latest_version(self, key: str) -> int:
        """Highest deployed version of a key, 0 if none."""
        versions = [
            int(self._graph.value(definition_uri, META.version))
            for definition_uri in self._graph.subjects(META.key, Literal(key))
        ]
        return max(versions, default=0)

    def latest(self, key: str) -> Optional[URIRef]:
        """URI of the latest definition version for a key, or None."""
        version = self.latest_version(key)
        if version == 0:
            return None
        return PROC[f"{key}:{version}"]

    def definition_id(self, definition_uri: URIRef) -> str:
        return str(definition_uri)[len(str(PROC)):]

    def definition_key(self, definition_uri: URIRef) -> Optional[str]:
        key = self._graph.value(definition_uri, META.key)
        return str(key) if key is not None else None

    def start_nodes(self, definition_uri: URIRef) -> List[URIRef]:
        """Start events of a definition, in element id order."""
        nodes = [
            node_uri
            for node_uri in self._graph.objects(definition_uri, PROC.hasElement)
            if (node_uri, RDF.type, BPMN.StartEvent) in self._graph
        ]
        return sorted(nodes, key=str)

    def outgoing(self, node_uri: URIRef) -> List[URIRef]:
        """Targets of a node's sequence flows, in element id order."""
        return sorted(self._graph.objects(node_uri, BPMN.flowsTo), key=str)

    def node_type(self, node_uri: URIRef) -> Optional[URIRef]:
        return self._graph.value(node_uri, RDF.type)

    def node_info(self, node_uri: URIRef) -> Dict[str, Optional[str]]:
        """Element id, name and raw assignment expressions of a node."""
        values = {}
        for key, predicate in (
            ("element_id", BPMN.id),
            ("name", BPMN.name),
            ("assignee", BPMN.assignee),
            ("candidate_users", BPMN.candidateUsers),
        ):
            value = self._graph.value(node_uri, predicate)
            values[key] = str(value) if value is not None else None
        return values

    def exists(self, key: str) -> bool:
        """Check if any version of a key is deployed."""
        return self.latest_version(key) > 0
