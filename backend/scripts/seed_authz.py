#!/usr/bin/env python
"""Idempotent seed script for the permission matrix & initial admin user.

Usage:
    python backend/scripts/seed_authz.py                # store the default matrix if none is stored
    python backend/scripts/seed_authz.py --reset        # overwrite the stored matrix with the defaults
    python backend/scripts/seed_authz.py --show-matrix  # print role x module grid after seeding
    python backend/scripts/seed_authz.py --dry-run      # run logic then rollback (no DB changes)
    python backend/scripts/seed_authz.py --export-json matrix.json
"""
from __future__ import annotations
import os, sys, argparse, textwrap, json, hashlib
from sqlalchemy import select, func, text

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from farmdash import create_app, get_db  # type: ignore
from farmdash.constants.permissions import ROLES, MODULES, ACTIONS
from farmdash.models.authz import RoleModulePermission, User
from farmdash.services.matrix import build_default_matrix, matrix_problems
from farmdash.services.persistence import MatrixStore

FLAG_LETTERS = {'view': 'V', 'create': 'C', 'edit': 'E', 'delete': 'D'}


def ensure_matrix(session, reset: bool = False) -> int:
    """Write the default matrix when nothing is stored (or always with reset); returns rows written."""
    existing = session.execute(select(func.count()).select_from(RoleModulePermission)).scalar_one()
    if existing and not reset:
        return 0
    return MatrixStore.write(session, build_default_matrix(MODULES))


def ensure_initial_admin(session):
    admin_email = os.getenv('SEED_ADMIN_EMAIL', 'admin@example.com')
    existing_admin = session.execute(select(User).where(User.email==admin_email)).scalar_one_or_none()
    if existing_admin:
        return None
    user = User(name=os.getenv('SEED_ADMIN_NAME', 'Administrator'), email=admin_email, role='Admin', status='Active')
    session.add(user)
    session.flush()
    print(f"[INFO] Created initial admin user {admin_email}.")
    return user


def stored_matrix_document(session):
    doc = {}
    for r in session.execute(select(RoleModulePermission)).scalars().all():
        doc.setdefault(r.role, {})[r.module] = {
            'view': bool(r.can_view), 'create': bool(r.can_create),
            'edit': bool(r.can_edit), 'delete': bool(r.can_delete),
        }
    return doc


def format_cell(cell) -> str:
    return ''.join(FLAG_LETTERS[a] if cell and cell.get(a) else '-' for a in ACTIONS)


def render_matrix(doc) -> str:
    role_w = max([len('Role')] + [len(r) for r in ROLES])
    col_w = max(len(m) for m in MODULES)
    lines = [f"{'Role'.ljust(role_w)} | " + ' '.join(m.ljust(col_w) for m in MODULES)]
    lines.append('-' * len(lines[0]))
    for role in ROLES:
        row = doc.get(role, {})
        lines.append(f"{role.ljust(role_w)} | " + ' '.join(format_cell(row.get(m)).ljust(col_w) for m in MODULES))
    return '\n'.join(lines)


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="Seed the role x module permission matrix",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_authz.py\n  dry run: seed_authz.py --dry-run\n  show grid: seed_authz.py --show-matrix\n""")
    )
    p.add_argument('--reset', action='store_true', help='Overwrite any stored matrix with the default policy')
    p.add_argument('--show-matrix', action='store_true', help='Print the stored matrix after seeding')
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    p.add_argument('--export-json', nargs='?', const='-', metavar='FILE', help='Export matrix JSON (to FILE or stdout if omitted)')
    p.add_argument('--validate', action='store_true', help='Check the stored matrix is total; exits non-zero on problems')
    p.add_argument('--fail-if-changed', metavar='CHECKSUM', help='Exit 4 if the stored matrix checksum differs from provided value')
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    app = create_app({'PERMISSIONS_AUTO_CREATE_SCHEMA': True})
    with app.app_context():
        session = get_db()
        try:
            session.execute(text('SELECT 1'))
            written = ensure_matrix(session, reset=args.reset)
            ensure_initial_admin(session)
            session.flush()
            doc = stored_matrix_document(session)
            if args.validate:
                problems = matrix_problems(doc, ROLES, MODULES)
                if problems:
                    print('\n[VALIDATION] FAIL:')
                    for p in problems:
                        print(' -', p)
                    session.rollback()
                    sys.exit(2)
                print('[VALIDATION] OK: stored matrix is total.')
            if args.dry_run:
                session.rollback()
                print(f"[DRY-RUN] (rolled back) Matrix rows would write: {written}")
            else:
                session.commit()
                print(f"[DONE] Matrix rows written: {written}")
            if args.show_matrix:
                print('\nPermission Matrix (V=view C=create E=edit D=delete):')
                print(render_matrix(doc))
            canonical = json.dumps(doc, sort_keys=True, separators=(',', ':'))
            checksum = hashlib.sha256(canonical.encode('utf-8')).hexdigest()
            if args.fail_if_changed:
                if checksum != args.fail_if_changed:
                    print(f"[CHECKSUM] MISMATCH: expected {args.fail_if_changed} got {checksum}")
                    sys.exit(4)
                print(f"[CHECKSUM] OK: {checksum}")
            if args.export_json is not None:
                payload = {'permissions': doc, 'meta': {'checksum_sha256': checksum, 'dry_run': args.dry_run}}
                if args.export_json == '-':
                    print(json.dumps(payload, indent=2, sort_keys=True))
                else:
                    with open(args.export_json, 'w', encoding='utf-8') as f:
                        json.dump(payload, f, indent=2, sort_keys=True)
                    print(f"[INFO] Exported JSON to {args.export_json}")
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

if __name__ == '__main__':
    main()
