"""Image identifier construction and validation.

Identifiers are ``<scheme>:<url>`` strings. Only ``wadors:`` and ``wadouri:``
identifiers are resolvable by downstream consumers; anything else (notably
the ``mado:`` fallback) must be filtered out before it reaches the store.
"""

from urllib.parse import urlencode

from dicom_manifest.core.constants import (
    FALLBACK_SCHEME,
    VALID_IMAGE_ID_SCHEMES,
    WADORS_SCHEME,
    WADOURI_SCHEME,
)


def build_instance_url(
    root: str | None,
    study_uid: str | None,
    series_uid: str | None,
    sop_uid: str | None,
) -> str | None:
    """``{root}/studies/{study}/series/{series}/instances/{sop}`` or None."""
    if not (root and study_uid and series_uid and sop_uid):
        return None
    return (
        f"{root.rstrip('/')}/studies/{study_uid}"
        f"/series/{series_uid}/instances/{sop_uid}"
    )


def build_frame_url(
    root: str | None,
    study_uid: str | None,
    series_uid: str | None,
    sop_uid: str | None,
    frame_number: int = 1,
) -> str | None:
    instance_url = build_instance_url(root, study_uid, series_uid, sop_uid)
    if instance_url is None:
        return None
    return f"{instance_url}/frames/{frame_number}"


def wadors_image_id(
    root: str | None,
    study_uid: str | None,
    series_uid: str | None,
    sop_uid: str | None,
    frame_number: int | None = 1,
) -> str | None:
    """WADO-RS image id; ``frame_number=None`` addresses the whole instance."""
    if frame_number is None:
        url = build_instance_url(root, study_uid, series_uid, sop_uid)
    else:
        url = build_frame_url(root, study_uid, series_uid, sop_uid, frame_number)
    return f"{WADORS_SCHEME}{url}" if url else None


def wadouri_image_id(
    wado_uri: str | None,
    study_uid: str | None,
    series_uid: str | None,
    sop_uid: str | None,
    frame_number: int | None = None,
) -> str | None:
    """WADO-URI image id for endpoints that only speak the legacy protocol."""
    if not (wado_uri and study_uid and series_uid and sop_uid):
        return None
    params = {
        "requestType": "WADO",
        "studyUID": study_uid,
        "seriesUID": series_uid,
        "objectUID": sop_uid,
        "contentType": "application/dicom",
    }
    query = urlencode(params, safe="/")
    image_id = f"{WADOURI_SCHEME}{wado_uri.rstrip('/')}?{query}"
    if frame_number is not None:
        image_id += f"&frame={frame_number}"
    return image_id


def fallback_image_id(study_uid: str, series_uid: str, sop_uid: str) -> str:
    """Placeholder id used when no retrieval endpoint is known."""
    return f"{FALLBACK_SCHEME}{study_uid}:{series_uid}:{sop_uid}"


def is_valid_image_id(image_id: str | None) -> bool:
    return bool(image_id) and image_id.startswith(VALID_IMAGE_ID_SCHEMES)


def image_id_to_uri(image_id: str) -> str:
    """Strip the scheme prefix; ids of unknown schemes are returned unchanged."""
    for scheme in VALID_IMAGE_ID_SCHEMES:
        if image_id.startswith(scheme):
            return image_id[len(scheme) :]
    return image_id


def with_frame_number(image_id: str, frame_number: int) -> str:
    """Re-target an image id at ``frame_number``."""
    if image_id.startswith(WADORS_SCHEME):
        base, sep, _ = image_id.rpartition("/frames/")
        if not sep:
            base = image_id
        return f"{base}/frames/{frame_number}"
    if image_id.startswith(WADOURI_SCHEME):
        base = image_id.split("&frame=", 1)[0]
        return f"{base}&frame={frame_number}"
    return image_id


def retrieval_root_from_url(url: str | None) -> str | None:
    """WADO-RS root of a RetrieveURL: everything before ``/studies``."""
    if not url:
        return None
    root = url.split("/studies", 1)[0].rstrip("/")
    return root or None
