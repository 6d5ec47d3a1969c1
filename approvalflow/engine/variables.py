# Variable encoding for the reference engine
# Converts variable values to RDF literals and back

import dataclasses
import datetime
import json
import logging
from decimal import Decimal
from typing import Any, Dict, Optional
from urllib.parse import quote

from rdflib import Graph, Literal, URIRef, XSD

from .base import VAR

logger = logging.getLogger(__name__)

# Datatypes for values without a native XSD mapping
JSON_DATATYPE = VAR.json
TUPLE_DATATYPE = VAR.jsonTuple

# rdflib maps these to XSD datatypes and back through toPython()
_NATIVE_TYPES = (
    str,
    bool,
    int,
    float,
    Decimal,
    datetime.datetime,
    datetime.date,
    datetime.time,
)


def _encode_object(value: Any) -> Any:
    """json.dumps fallback for structured values."""
    if hasattr(value, "model_dump"):
        return value.model_dump()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    if hasattr(value, "__dict__"):
        return vars(value)
    raise TypeError(f"Variable value of type {type(value).__name__} is not serializable")


def to_literal(value: Any) -> Literal:
    """
    Encode a variable value as a literal.

    Strings, booleans, numbers, decimals, dates and times keep their XSD
    datatype. Everything else, None included, is stored as JSON; objects come
    back as dictionaries and top-level tuples as tuples. Dates nested inside
    structured values come back as ISO strings.

    Raises:
        TypeError: If the value cannot be serialized
    """
    if isinstance(value, _NATIVE_TYPES):
        return Literal(value)
    return Literal(
        json.dumps(value, default=_encode_object, ensure_ascii=False),
        datatype=TUPLE_DATATYPE if isinstance(value, tuple) else JSON_DATATYPE,
    )


def from_literal(literal: Literal) -> Any:
    """Decode a literal written by to_literal."""
    if literal.datatype == JSON_DATATYPE:
        return json.loads(str(literal))
    if literal.datatype == TUPLE_DATATYPE:
        return tuple(json.loads(str(literal)))
    if literal.datatype is None or literal.datatype == XSD.string:
        return str(literal)
    return literal.toPython()


def encode_variables(variables: Optional[Dict[str, Any]]) -> Dict[str, Literal]:
    """
    Encode a whole variable mapping up front.

    Callers encode before touching any graph, so a value that cannot be
    stored fails the command without partial writes.
    """
    return {name: to_literal(value) for name, value in (variables or {}).items()}


def write_variables(
    graph: Graph, owner: URIRef, scope_id: str, literals: Dict[str, Literal]
) -> None:
    """
    Upsert encoded variables attached to an owner node.

    Variable nodes are named after the scope id and variable name, so
    writing a name twice replaces the value.
    """
    for name, literal in literals.items():
        var_uri = VAR[f"{scope_id}_{quote(name, safe='')}"]
        graph.add((owner, VAR.hasVariable, var_uri))
        graph.set((var_uri, VAR.name, Literal(name)))
        graph.set((var_uri, VAR.value, literal))


def read_variables(graph: Graph, owner: URIRef) -> Dict[str, Any]:
    """Collect the variables attached to an owner node."""
    variables = {}
    for var_uri in graph.objects(owner, VAR.hasVariable):
        name = graph.value(var_uri, VAR.name)
        value = graph.value(var_uri, VAR.value)
        if name is None or value is None:
            continue
        variables[str(name)] = from_literal(value)
    return variables


def remove_variables(graph: Graph, owner: URIRef) -> None:
    """Remove an owner's variables and the links to them."""
    for var_uri in list(graph.objects(owner, VAR.hasVariable)):
        graph.remove((var_uri, None, None))
    graph.remove((owner, VAR.hasVariable, None))


def lookup_path(variables: Dict[str, Any], path: str) -> Optional[Any]:
    """
    Resolve a dotted path such as ``form.user`` against variables.

    Dictionaries are indexed by key, other values by attribute.
    """
    value: Any = variables
    for part in path.split("."):
        if isinstance(value, dict):
            value = value.get(part)
        else:
            value = getattr(value, part, None)
        if value is None:
            return None
    return value
