from __future__ import annotations
from typing import Optional, Tuple
from flask import request, abort, make_response
from sqlalchemy.orm import Query
from farmdash.config.pagination import normalize_pagination


def apply_pagination(q: Query) -> Tuple[Query, int, int, int]:
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        abort(400, description=str(e))
    total = q.count()
    return q.offset(offset).limit(limit), total, limit, offset


def build_list_payload(rows: list, total: int, limit: int, offset: int):
    return {
        'data': rows,
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'returned': len(rows)
        }
    }


def _strip_quotes(value: str) -> str:
    value = value.strip()
    if value.startswith('W/'):
        value = value[2:]
    return value.strip('"')


def etag_matches(header_val: Optional[str], etag: str) -> bool:
    """True when an If-None-Match / If-Match header names ``etag`` (or is ``*``)."""
    if not header_val:
        return False
    candidates = [_strip_quotes(v) for v in header_val.split(',')]
    return '*' in candidates or etag in candidates


def if_match_versions(header_val: Optional[str]) -> Optional[Tuple[str, ...]]:
    """Versions named by an If-Match header; None when absent or ``*`` (no precondition)."""
    if not header_val:
        return None
    candidates = tuple(_strip_quotes(v) for v in header_val.split(','))
    if '*' in candidates:
        return None
    return candidates


def make_etag_response(payload: dict, etag: str):
    """Return 304 when the client's If-None-Match already names ``etag``; else the payload with ETag set."""
    if etag_matches(request.headers.get('If-None-Match'), etag):
        resp = make_response('', 304)
    else:
        resp = make_response(payload)
    resp.headers['ETag'] = f'"{etag}"'
    return resp


__all__ = ['apply_pagination', 'build_list_payload', 'etag_matches', 'if_match_versions', 'make_etag_response']
