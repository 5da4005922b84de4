"""CLI entrypoint for the grounding index."""

from __future__ import annotations

import json
import mimetypes
import os
from pathlib import Path
from typing import Optional

import requests
import typer

app = typer.Typer(name="gidx", help="Grounding index command-line interface")
materials_app = typer.Typer(name="materials", help="Source materials")
images_app = typer.Typer(name="images", help="Image library")
app.add_typer(materials_app, name="materials")
app.add_typer(images_app, name="images")

DEFAULT_HOST = "http://127.0.0.1:5180"

HostOption = typer.Option(None, "--host", help="Override backend host")
OwnerOption = typer.Option(None, "--owner", help="Owner id (defaults to GIDX_OWNER)")


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip("/")
    env_host = os.environ.get("GIDX_HOST")
    if env_host:
        return env_host.rstrip("/")
    return DEFAULT_HOST


def _resolve_owner(override: Optional[str]) -> str:
    owner = override or os.environ.get("GIDX_OWNER")
    if not owner:
        typer.echo("An owner id is required (--owner or GIDX_OWNER)", err=True)
        raise typer.Exit(code=2)
    return owner


def _request(method: str, path: str, host: Optional[str], owner: Optional[str], **kwargs) -> requests.Response:
    url = f"{_resolve_host(host)}{path}"
    headers = {"X-Owner-Id": _resolve_owner(owner)}
    resp = requests.request(method, url, headers=headers, timeout=600, **kwargs)
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


def _echo(resp: requests.Response) -> None:
    typer.echo(json.dumps(resp.json(), indent=2))


def _guess_type(path: Path) -> str:
    return mimetypes.guess_type(path.name)[0] or "application/octet-stream"


@materials_app.command("upload")
def upload_material(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="File to upload"),
    description: Optional[str] = typer.Option(None, "--description", help="Free-text description"),
    process: bool = typer.Option(False, "--process/--no-process", help="Index right after upload"),
    host: Optional[str] = HostOption,
    owner: Optional[str] = OwnerOption,
) -> None:
    """Upload a reference document."""
    with path.open("rb") as fh:
        files = {"file": (path.name, fh, _guess_type(path))}
        data: dict[str, str] = {"process": str(process).lower()}
        if description:
            data["description"] = description
        resp = _request("POST", "/materials", host, owner, files=files, data=data)
    _echo(resp)


@materials_app.command("list")
def list_materials(
    status: Optional[str] = typer.Option(None, "--status", help="UPLOADED, PROCESSING, INDEXED or FAILED"),
    host: Optional[str] = HostOption,
    owner: Optional[str] = OwnerOption,
) -> None:
    """List uploaded materials, newest first."""
    params = {"status": status.upper()} if status else None
    _echo(_request("GET", "/materials", host, owner, params=params))


@materials_app.command("process")
def process_material(
    material_id: str = typer.Argument(..., help="Material identifier"),
    host: Optional[str] = HostOption,
    owner: Optional[str] = OwnerOption,
) -> None:
    """(Re)index a material."""
    _echo(_request("POST", f"/materials/{material_id}/process", host, owner))


@materials_app.command("chunks")
def list_chunks(
    material_id: str = typer.Argument(..., help="Material identifier"),
    host: Optional[str] = HostOption,
    owner: Optional[str] = OwnerOption,
) -> None:
    """Show the stored chunks of a material."""
    _echo(_request("GET", f"/materials/{material_id}/chunks", host, owner))


@materials_app.command("delete")
def delete_material(
    material_id: str = typer.Argument(..., help="Material identifier"),
    host: Optional[str] = HostOption,
    owner: Optional[str] = OwnerOption,
) -> None:
    """Delete a material, its chunks and its blob."""
    _echo(_request("DELETE", f"/materials/{material_id}", host, owner))


@materials_app.command("search")
def search_materials(
    query: str = typer.Argument(..., help="Query text"),
    top_n: Optional[int] = typer.Option(None, "--top-n", help="Number of passages"),
    material: Optional[list[str]] = typer.Option(None, "--material", help="Restrict to these material ids"),
    host: Optional[str] = HostOption,
    owner: Optional[str] = OwnerOption,
) -> None:
    """Find grounding passages for a query."""
    payload: dict[str, object] = {"query": query}
    if top_n is not None:
        payload["top_n"] = top_n
    if material:
        payload["material_ids"] = list(material)
    _echo(_request("POST", "/materials/search", host, owner, json=payload))


@images_app.command("upload")
def upload_image(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Image file"),
    host: Optional[str] = HostOption,
    owner: Optional[str] = OwnerOption,
) -> None:
    """Upload an image; its description is generated on upload."""
    with path.open("rb") as fh:
        resp = _request("POST", "/images", host, owner, files={"file": (path.name, fh, _guess_type(path))})
    _echo(resp)


@images_app.command("list")
def list_images(host: Optional[str] = HostOption, owner: Optional[str] = OwnerOption) -> None:
    """List images."""
    _echo(_request("GET", "/images", host, owner))


@images_app.command("delete")
def delete_image(
    image_id: str = typer.Argument(..., help="Image identifier"),
    host: Optional[str] = HostOption,
    owner: Optional[str] = OwnerOption,
) -> None:
    """Delete an image."""
    _echo(_request("DELETE", f"/images/{image_id}", host, owner))


@images_app.command("recommend")
def recommend_images(
    text: str = typer.Argument(..., help="Marketing text to match"),
    top_n: Optional[int] = typer.Option(None, "--top-n", help="Number of images"),
    host: Optional[str] = HostOption,
    owner: Optional[str] = OwnerOption,
) -> None:
    """Recommend images for a piece of text."""
    payload: dict[str, object] = {"text_content": text}
    if top_n is not None:
        payload["top_n"] = top_n
    _echo(_request("POST", "/images/recommendations", host, owner, json=payload))


if __name__ == "__main__":
    app()
