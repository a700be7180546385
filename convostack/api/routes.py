from __future__ import annotations

from flask import current_app, jsonify, request

from convostack.api import api_bp
from convostack.extensions import db
from convostack.models import Folder
from convostack.tree.ancestry import AncestryResolver
from convostack.tree.errors import MissingTargetError, TreeIntegrityError, ValidationError
from convostack.tree.expansion import ExpansionState
from convostack.tree.graph import FolderGraph
from convostack.tree.moves import MoveValidator
from convostack.tree.mutations import validate_folder_name
from convostack.tree.remote import DeletePolicy, FolderKind
from convostack.tree.views import ViewProjector


def _json_error(message: str, status_code: int = 400):
    return jsonify({"error": message}), status_code


def _request_owner_id(payload: dict | None = None) -> str | None:
    raw = request.args.get("owner_id")
    if raw is None and payload is not None:
        raw = payload.get("owner_id")
    owner_id = str(raw).strip() if raw is not None else ""
    return owner_id or None


def _request_kind(payload: dict | None = None) -> FolderKind:
    raw = request.args.get("kind")
    if raw is None and payload is not None:
        raw = payload.get("kind")
    return FolderKind.parse(raw)


def _request_scope(payload: dict | None = None):
    """Owner and folder kind of the request, or an error response."""
    owner_id = _request_owner_id(payload)
    if not owner_id:
        return None, None, _json_error("owner_id is required")
    try:
        kind = _request_kind(payload)
    except ValueError as exc:
        return None, None, _json_error(str(exc))
    return owner_id, kind, None


def _optional_parent_id(raw) -> str | None:
    if raw is None:
        return None
    value = str(raw).strip()
    return value or None


def _parse_item_count(raw) -> int:
    if isinstance(raw, bool):
        raise ValueError("invalid item count")
    value = int(raw)
    if value < 0:
        raise ValueError("invalid item count")
    return value


def _owner_folders(owner_id: str, kind: FolderKind) -> list[Folder]:
    return (
        Folder.query.filter_by(owner_id=owner_id, kind=kind.value)
        .order_by(Folder.name.asc())
        .all()
    )


def _owner_graph(rows: list[Folder]) -> FolderGraph:
    return FolderGraph(row.to_tree_folder() for row in rows)


def _get_owner_folder(
    owner_id: str, kind: FolderKind, folder_id: str
) -> Folder | None:
    return Folder.query.filter_by(
        id=folder_id, owner_id=owner_id, kind=kind.value
    ).first()


@api_bp.route("/folders", methods=["GET"])
def folders_list():
    owner_id, kind, error = _request_scope()
    if error:
        return error
    items = _owner_folders(owner_id, kind)
    return jsonify({"items": [item.as_dict() for item in items]})


@api_bp.route("/folders", methods=["POST"])
def folders_create():
    payload = request.get_json(silent=True) or {}
    owner_id, kind, error = _request_scope(payload)
    if error:
        return error

    try:
        name = validate_folder_name(
            payload.get("name"), current_app.config["FOLDER_NAME_MAX_LENGTH"]
        )
    except ValidationError as exc:
        return _json_error(str(exc))

    parent_id = _optional_parent_id(payload.get("parent_id"))
    if parent_id is not None and not _get_owner_folder(owner_id, kind, parent_id):
        return _json_error("parent folder not found", 404)

    # The free-tier limit covers bookmark folders only.
    limit = int(current_app.config.get("FOLDER_LIMIT") or 0)
    if (
        limit
        and kind == FolderKind.BOOKMARK
        and Folder.query.filter_by(owner_id=owner_id, kind=kind.value).count() >= limit
    ):
        return _json_error(f"Free tier users are limited to {limit} folders", 403)

    folder = Folder(
        owner_id=owner_id,
        kind=kind.value,
        name=name,
        parent_id=parent_id,
        item_count=0,
    )
    db.session.add(folder)
    db.session.commit()
    return jsonify(folder.as_dict()), 201


@api_bp.route("/folders/<folder_id>", methods=["PATCH"])
def folders_update(folder_id: str):
    payload = request.get_json(silent=True) or {}
    owner_id, kind, error = _request_scope(payload)
    if error:
        return error
    folder = _get_owner_folder(owner_id, kind, folder_id)
    if not folder:
        return _json_error("folder not found", 404)

    if "name" in payload:
        try:
            folder.name = validate_folder_name(
                payload.get("name"), current_app.config["FOLDER_NAME_MAX_LENGTH"]
            )
        except ValidationError as exc:
            return _json_error(str(exc))

    if "item_count" in payload:
        try:
            folder.item_count = _parse_item_count(payload.get("item_count"))
        except (TypeError, ValueError):
            return _json_error("item_count must be a non-negative integer")

    if "parent_id" in payload:
        parent_id = _optional_parent_id(payload.get("parent_id"))
        graph = _owner_graph(_owner_folders(owner_id, kind))
        try:
            move_error = MoveValidator(AncestryResolver(graph)).can_move(
                folder.id, parent_id
            )
        except TreeIntegrityError as exc:
            db.session.rollback()
            return _json_error(str(exc), 409)
        if move_error is not None:
            db.session.rollback()
            status_code = 404 if isinstance(move_error, MissingTargetError) else 400
            return _json_error(str(move_error), status_code)
        folder.parent_id = parent_id

    db.session.commit()
    return jsonify(folder.as_dict())


@api_bp.route("/folders/<folder_id>", methods=["DELETE"])
def folders_delete(folder_id: str):
    owner_id, kind, error = _request_scope()
    if error:
        return error
    try:
        policy = DeletePolicy.parse(
            request.args.get("policy") or current_app.config["FOLDER_DELETE_POLICY"]
        )
    except ValueError as exc:
        return _json_error(str(exc))

    rows = _owner_folders(owner_id, kind)
    by_id = {row.id: row for row in rows}
    folder = by_id.get(folder_id)
    if not folder:
        return _json_error("folder not found", 404)

    graph = _owner_graph(rows)
    if policy == DeletePolicy.CASCADE:
        resolver = AncestryResolver(graph)
        try:
            resolver.descendants(folder.id)
        except TreeIntegrityError as exc:
            return _json_error(str(exc), 409)

        # Children go before their parents so no row points at a deleted one.
        ordered: list[str] = []

        def walk(current_id: str) -> None:
            for child in graph.children(current_id):
                walk(child.id)
            ordered.append(current_id)

        walk(folder.id)
        for row_id in ordered:
            db.session.delete(by_id[row_id])
            db.session.flush()
    else:
        ordered = [folder.id]
        for child in graph.children(folder.id):
            by_id[child.id].parent_id = folder.parent_id
        db.session.flush()
        db.session.delete(folder)

    db.session.commit()
    current_app.logger.info(
        "Deleted %d %s folder(s) for owner %s (%s)",
        len(ordered),
        kind.value,
        owner_id,
        policy.value,
    )
    return jsonify({"status": "deleted", "policy": policy.value, "deleted": ordered})


@api_bp.route("/folders/tree", methods=["GET"])
def folders_tree():
    owner_id, kind, error = _request_scope()
    if error:
        return error

    query = (request.args.get("q") or "").strip()
    selected_id = _optional_parent_id(request.args.get("selected"))

    graph = _owner_graph(_owner_folders(owner_id, kind))
    resolver = AncestryResolver(graph)
    projector = ViewProjector(resolver)
    try:
        expansion = ExpansionState(resolver, selected_id=selected_id)
        if query:
            projection = projector.search(query)
            for match_id in projection.matched_ids:
                parent_id = graph.get(match_id).parent_id
                if parent_id is not None and parent_id in graph:
                    expansion.expand_path(parent_id)
        elif selected_id:
            projection = projector.scoped(selected_id)
        else:
            projection = projector.full()
    except TreeIntegrityError as exc:
        return _json_error(str(exc), 409)

    payload = projection.as_dict()
    payload["expanded"] = sorted(expansion.expanded)
    return jsonify(payload)


@api_bp.route("/folders/options", methods=["GET"])
def folders_options():
    owner_id, kind, error = _request_scope()
    if error:
        return error
    graph = _owner_graph(_owner_folders(owner_id, kind))
    return jsonify({"items": ViewProjector(AncestryResolver(graph)).folder_options()})


@api_bp.route("/folders/<folder_id>/path", methods=["GET"])
def folders_path(folder_id: str):
    owner_id, kind, error = _request_scope()
    if error:
        return error
    graph = _owner_graph(_owner_folders(owner_id, kind))
    if folder_id not in graph:
        return _json_error("folder not found", 404)

    resolver = AncestryResolver(graph)
    try:
        payload = {
            "id": folder_id,
            "ancestors": resolver.ancestor_chain(folder_id, strict=True),
            "path": resolver.path_names(folder_id),
            "subtree_item_count": resolver.subtree_item_count(folder_id),
        }
    except TreeIntegrityError as exc:
        return _json_error(str(exc), 409)
    return jsonify(payload)
