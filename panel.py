#!/usr/bin/env python3
"""
CosmoInside admin panel - Flask JSON API over the admin controllers.

Usage:
    python main.py --serve              # http://localhost:5001
    python main.py --serve --port 8080

Every route except /health, /login and /logout sits behind the access guard.
Destructive actions need "confirm": true in the request body; without it they
answer 409 with the question that would have been asked.
"""

import asyncio
import secrets
from dataclasses import fields, is_dataclass, replace
from typing import Any, Callable, Optional

from flask import Flask, g, has_request_context, jsonify, redirect, request, session
from pydantic import BaseModel
from rich.console import Console

from src.auth.guard import AccessGuard
from src.auth.session import AuthSession
from src.backend.supabase_client import AdminContext
from src.controllers.account import AccountController
from src.controllers.brands import BrandController
from src.controllers.bugs import BugReportController
from src.controllers.categories import (
    CategoryTree,
    filter_categories,
    filter_tags,
    group_by_root,
)
from src.controllers.dashboard import Dashboard
from src.controllers.ingredients import IngredientController
from src.controllers.products import ProductController, ProductDraft
from src.errors import AdminError, BackendError, NotFoundError, ValidationError
from src.models.catalog import Tag
from src.storage.assets import AssetFile

console = Console()

PUBLIC_ENDPOINTS = {"health", "login_status", "login", "logout", "static"}
AUTH_TOKENS_KEY = "auth"

PRODUCT_TEXT_FIELDS = ("description", "technologist_note", "barcode")
PRODUCT_ID_FIELDS = ("ingredient_ids", "category_ids", "tag_ids")


def to_json(value: Any) -> Any:
    """Models, dataclasses and containers -> JSON-ready data."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_json(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {k: to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_json(v) for v in value]
    return value


def navigate(route: str) -> None:
    """Controllers' router: remember the target for the JSON response."""
    if has_request_context():
        g.redirect_to = route


class RequestConfirm:
    """Answers confirm prompts from the request body and remembers the question."""

    def __init__(self, answer: bool):
        self.answer = answer
        self.prompt: Optional[str] = None

    def __call__(self, prompt: str) -> bool:
        self.prompt = prompt
        return self.answer


def respond(data: Any = None, status: int = 200):
    body = {"data": to_json(data)}
    redirect_to = g.get("redirect_to")
    if redirect_to:
        body["redirect"] = redirect_to
    notice = g.get("notice")
    if notice:
        body["notice"] = notice
    return jsonify(body), status


def confirmation_required(confirm: RequestConfirm):
    return jsonify({"error": "Confirmation required", "confirm": confirm.prompt}), 409


def request_values() -> dict:
    """JSON body or form fields."""
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        return payload
    return request.form.to_dict()


def request_file(name: str) -> Optional[AssetFile]:
    upload = request.files.get(name)
    if upload is None or not upload.filename:
        return None
    return AssetFile(
        filename=upload.filename,
        content=upload.read(),
        content_type=upload.mimetype,
    )


def request_ids(values: dict, name: str) -> list[int]:
    raw = values.get(name)
    if name in request.form:
        raw = request.form.getlist(name)
    if isinstance(raw, str):
        raw = [part for part in raw.split(",") if part.strip()]
    try:
        return [int(i) for i in raw or []]
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid {name}: {raw!r}") from e


def is_confirmed(values: dict) -> bool:
    flag = values.get("confirm")
    if isinstance(flag, str):
        return flag.lower() in ("1", "true", "yes")
    return bool(flag)


def product_draft(values: dict, base: Optional[ProductDraft] = None) -> ProductDraft:
    """
    Overlay the fields present in the request on a draft.

    Fields the request leaves out keep the base draft's values, so a partial
    body never clears text or associations it does not mention.
    """
    draft = replace(base) if base is not None else ProductDraft()
    if "brand_id" in values:
        brand_id = values.get("brand_id")
        try:
            draft.brand_id = int(brand_id) if brand_id not in (None, "") else None
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid brand_id: {brand_id!r}") from e
    if "name" in values:
        draft.name = values.get("name") or ""
    for name in PRODUCT_TEXT_FIELDS:
        if name in values:
            setattr(draft, name, values.get(name))
    for name in PRODUCT_ID_FIELDS:
        if name in values:
            setattr(draft, name, request_ids(values, name))
    draft.thumbnail = request_file("thumbnail")
    return draft


def error_status(error: AdminError) -> int:
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    return 502


def register_entity_routes(
    app: Flask,
    name: str,
    factory: Callable[[Optional[RequestConfirm]], Any],
    file_field: Optional[str] = None,
) -> None:
    """List/get/create/update/delete/mark-reviewed routes for one entity."""

    def with_file(values: dict) -> dict:
        if file_field:
            upload = request_file(file_field)
            if upload is not None:
                values = {**values, file_field: upload}
        return values

    def list_rows():
        controller = factory(None)
        controller.load()
        if controller.error:
            return jsonify({"error": controller.error, "data": []}), 502
        return respond(controller.filter(request.args.get("q", "")))

    def create_row():
        controller = factory(None)
        return respond(controller.create(with_file(request_values())), 201)

    def get_row(row_id: int):
        controller = factory(None)
        row = controller.get(row_id)
        if row is None:
            g.notice = controller.notice
            return respond(None, 404)
        return respond(row)

    def update_row(row_id: int):
        controller = factory(None)
        if controller.get(row_id) is None:
            g.notice = controller.notice
            return respond(None, 404)
        return respond(controller.update(row_id, with_file(request_values())))

    def delete_row(row_id: int):
        confirm = RequestConfirm(is_confirmed(request_values()))
        controller = factory(confirm)
        controller.get(row_id)
        if not controller.delete(row_id):
            return confirmation_required(confirm)
        return respond({"deleted": row_id})

    def mark_reviewed(row_id: int):
        controller = factory(None)
        return respond({"reviewed": controller.mark_reviewed(row_id)})

    app.add_url_rule(f"/{name}", f"{name}_list", list_rows, methods=["GET"])
    app.add_url_rule(f"/{name}", f"{name}_create", create_row, methods=["POST"])
    app.add_url_rule(f"/{name}/<int:row_id>", f"{name}_get", get_row, methods=["GET"])
    app.add_url_rule(f"/{name}/<int:row_id>", f"{name}_update", update_row, methods=["POST", "PATCH"])
    app.add_url_rule(f"/{name}/<int:row_id>", f"{name}_delete", delete_row, methods=["DELETE"])
    app.add_url_rule(
        f"/{name}/<int:row_id>/reviewed", f"{name}_reviewed", mark_reviewed, methods=["POST"]
    )


def session_tokens(auth_session: Any) -> Optional[dict]:
    if auth_session is None:
        return None
    return {
        "access_token": auth_session.access_token,
        "refresh_token": auth_session.refresh_token,
    }


def create_app(context: AdminContext) -> Flask:
    """
    Build the panel around one backend context.

    Each request gets its own fork of the context, signed in with the tokens
    kept in that caller's session cookie; the guard runs against that
    session alone.
    """
    app = Flask(__name__)
    routes = context.routes

    panel_config = context.config.panel
    if not panel_config.secret_key:
        console.print(
            "[yellow]PANEL_SECRET_KEY not set; sign-ins will not survive a restart[/yellow]"
        )
    app.secret_key = panel_config.secret_key or secrets.token_hex(32)
    app.config["SESSION_COOKIE_NAME"] = panel_config.session_cookie_name
    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"

    def admin_context() -> AdminContext:
        """Backend context bound to the caller's own auth session."""
        if "admin_context" not in g:
            g.admin_context = context.fork()
            tokens = session.get(AUTH_TOKENS_KEY)
            if tokens:
                try:
                    g.admin_context.client.auth.set_session(
                        tokens["access_token"], tokens["refresh_token"]
                    )
                except Exception as e:
                    console.print(f"[yellow]Stored session rejected: {e}[/yellow]")
                    session.pop(AUTH_TOKENS_KEY, None)
        return g.admin_context

    def request_guard() -> AccessGuard:
        if "guard" not in g:
            guard = AccessGuard(admin_context(), navigate=lambda route: None)
            guard.refresh()
            g.guard = guard
        return g.guard

    @app.before_request
    def require_admin():
        if request.endpoint in PUBLIC_ENDPOINTS:
            return None
        if not request_guard().allowed:
            return redirect(routes.login)
        return None

    @app.after_request
    def keep_session_tokens(response):
        # The client may have refreshed the tokens during the request
        ctx = g.get("admin_context")
        if ctx is None or AUTH_TOKENS_KEY not in session:
            return response
        try:
            tokens = session_tokens(ctx.client.auth.get_session())
        except Exception as e:
            console.print(f"[yellow]Could not read session: {e}[/yellow]")
            tokens = None
        if tokens is None:
            session.pop(AUTH_TOKENS_KEY, None)
        elif tokens != session[AUTH_TOKENS_KEY]:
            session[AUTH_TOKENS_KEY] = tokens
        return response

    @app.errorhandler(AdminError)
    def handle_admin_error(error: AdminError):
        status = error_status(error)
        if status == 502:
            console.print(f"[red]{request.method} {request.path}: {error}[/red]")
        return jsonify({"error": str(error)}), status

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    @app.route("/health")
    def health():
        checks = context.check_health()
        ok = all(passed for _, passed, _ in checks)
        return jsonify(
            {
                "ok": ok,
                "checks": [
                    {"check": name, "ok": passed, "detail": detail}
                    for name, passed, detail in checks
                ],
            }
        ), (200 if ok else 503)

    @app.route(routes.login, methods=["GET"], endpoint="login_status")
    def login_status():
        guard = request_guard()
        return jsonify({"authenticated": guard.allowed, "state": guard.state.value})

    @app.route(routes.login, methods=["POST"])
    def login():
        values = request_values()
        session.pop(AUTH_TOKENS_KEY, None)
        ctx = admin_context()
        AuthSession(ctx, navigate).sign_in(
            values.get("email") or "", values.get("password") or ""
        )
        g.pop("guard", None)
        if not request_guard().allowed:
            return jsonify({"error": "This account has no admin access."}), 403
        session[AUTH_TOKENS_KEY] = session_tokens(ctx.client.auth.get_session())
        return respond({"authenticated": True})

    @app.route("/logout", methods=["POST"])
    def logout():
        AuthSession(admin_context(), navigate).sign_out()
        session.pop(AUTH_TOKENS_KEY, None)
        return respond({"authenticated": False})

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------

    @app.route(routes.home)
    def dashboard():
        stats = asyncio.run(Dashboard(admin_context()).load())
        data = to_json(stats)
        data["review_total"] = stats.review_total
        return respond(data)

    # ------------------------------------------------------------------
    # Brands and ingredients
    # ------------------------------------------------------------------

    register_entity_routes(
        app,
        routes.brands.strip("/"),
        lambda confirm: BrandController(admin_context(), navigate, confirm),
        file_field="logo",
    )
    register_entity_routes(
        app,
        routes.ingredients.strip("/"),
        lambda confirm: IngredientController(admin_context(), navigate, confirm),
    )

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    products_path = routes.products

    def product_controller(confirm: Optional[RequestConfirm] = None) -> ProductController:
        return ProductController(admin_context(), navigate, confirm)

    @app.route(products_path, methods=["GET"])
    def products_list():
        controller = product_controller()
        rows = controller.search(request.args.get("q", ""))
        if controller.error:
            return jsonify({"error": controller.error, "data": []}), 502
        return respond(rows)

    @app.route(f"{products_path}/options", methods=["GET"])
    def products_options():
        return respond(asyncio.run(product_controller().load_form_options()))

    @app.route(products_path, methods=["POST"])
    def products_create():
        values = request_values()
        confirm = RequestConfirm(is_confirmed(values))
        product = product_controller(confirm).create(product_draft(values))
        if product is None:
            return confirmation_required(confirm)
        return respond(product, 201)

    @app.route(f"{products_path}/<int:product_id>", methods=["GET"])
    def products_details(product_id: int):
        controller = product_controller()
        details = asyncio.run(controller.details(product_id))
        if details is None:
            g.notice = controller.notice
            return respond(None, 404)
        return respond(details)

    @app.route(f"{products_path}/<int:product_id>/edit", methods=["GET"])
    def products_edit(product_id: int):
        controller = product_controller()
        product = controller.load_for_edit(product_id)
        if product is None:
            g.notice = controller.notice
            return respond(None, 404)
        return respond(product)

    @app.route(f"{products_path}/<int:product_id>", methods=["POST", "PATCH"])
    def products_save(product_id: int):
        controller = product_controller()
        product = controller.load_for_edit(product_id)
        if product is None:
            g.notice = controller.notice
            return respond(None, 404)
        draft = product_draft(request_values(), ProductDraft.from_product(product))
        return respond(controller.save(product_id, draft))

    @app.route(f"{products_path}/<int:product_id>", methods=["DELETE"])
    def products_delete(product_id: int):
        confirm = RequestConfirm(is_confirmed(request_values()))
        controller = product_controller(confirm)
        controller.load_for_edit(product_id)
        if not controller.delete(product_id):
            return confirmation_required(confirm)
        return respond({"deleted": product_id})

    @app.route(f"{products_path}/<int:product_id>/reviewed", methods=["POST"])
    def products_reviewed(product_id: int):
        return respond({"reviewed": product_controller().mark_reviewed(product_id)})

    # ------------------------------------------------------------------
    # Categories and tags
    # ------------------------------------------------------------------

    @app.route("/categories")
    def categories():
        tree = CategoryTree.load(admin_context())
        query = request.args.get("q", "")
        if request.args.get("view") == "tree":
            return respond(
                [{"level": level, "category": c} for level, c in tree.walk()]
            )
        groups = group_by_root(filter_categories(tree.categories, query))
        return respond([{"root": root, "categories": items} for root, items in groups])

    @app.route("/tags")
    def tags():
        try:
            result = (
                admin_context().table("tags").select("id,name,slug").order("name").execute()
            )
        except Exception as e:
            raise BackendError(f"Could not load tags: {e}") from e
        items = [Tag.model_validate(r) for r in (result.data or [])]
        return respond(filter_tags(items, request.args.get("q", "")))

    # ------------------------------------------------------------------
    # Bug reports
    # ------------------------------------------------------------------

    @app.route("/bugs")
    def bugs_list():
        return respond(BugReportController(admin_context(), navigate).open_reports())

    @app.route("/bugs/<int:bug_id>")
    def bugs_get(bug_id: int):
        controller = BugReportController(admin_context(), navigate)
        report = controller.get(bug_id)
        if report is None:
            g.notice = controller.notice
            return respond(None, 404)
        return respond(report)

    @app.route("/bugs/<int:bug_id>/toggle", methods=["POST"])
    def bugs_toggle(bug_id: int):
        controller = BugReportController(admin_context(), navigate)
        report = controller.get(bug_id)
        if report is None:
            g.notice = controller.notice
            return respond(None, 404)
        return respond(controller.toggle_status(report))

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    account_path = routes.account

    def account_controller() -> AccountController:
        controller = AccountController(admin_context(), navigate)
        controller.load()
        return controller

    @app.route(account_path)
    def account():
        controller = account_controller()
        return respond({"email": controller.email, "profile": controller.profile})

    @app.route(f"{account_path}/profile", methods=["POST"])
    def account_profile():
        values = request_values()
        profile = account_controller().save_profile(
            values.get("display_name") or "", avatar=request_file("avatar")
        )
        return respond(profile)

    @app.route(f"{account_path}/settings", methods=["POST"])
    def account_settings():
        values = request_values()
        profile = account_controller().save_settings(
            values.get("preferred_locale") or "", values.get("landing_route") or ""
        )
        return respond(profile)

    @app.route(f"{account_path}/password", methods=["POST"])
    def account_password():
        values = request_values()
        account_controller().change_password(
            values.get("password") or "", values.get("repeat") or ""
        )
        return respond({"changed": True})

    @app.route(f"{account_path}/sign-out-everywhere", methods=["POST"])
    def account_sign_out_everywhere():
        account_controller().sign_out_everywhere()
        session.pop(AUTH_TOKENS_KEY, None)
        return respond({"authenticated": False})

    return app
