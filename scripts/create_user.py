#!/usr/bin/env python3
# scripts/create_user.py — v1.1.0 (02/10/2025)
# Cria usuário e concede papel (padrão: admin).
#   python scripts/create_user.py [--papel user]
import argparse
import sys
from getpass import getpass

# garantir import da raiz do projeto
import os
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from database import Base, db_session, engine
from auth_models import PAPEIS, User, UserRole, grant_role
from security import hash_password


def main():
    ap = argparse.ArgumentParser(description="Cria usuário do console administrativo")
    ap.add_argument("--papel", choices=PAPEIS, default="admin")
    args = ap.parse_args()

    Base.metadata.create_all(bind=engine, tables=[User.__table__, UserRole.__table__])

    username = input("Usuário: ").strip()
    if not username:
        print("Usuário inválido.")
        return 1
    p1 = getpass("Senha: ")
    p2 = getpass("Repita a senha: ")
    if p1 != p2 or not p1:
        print("Senhas não conferem.")
        return 1

    with db_session() as db:
        user = db.query(User).filter(User.username == username).first()
        if user is None:
            user = User(username=username, password_hash=hash_password(p1), is_active=True)
            db.add(user)
            db.flush()
            print("Usuário criado.")
        else:
            print("Usuário já existe; só o papel será concedido.")
        grant_role(db, user, args.papel)
    print(f"Papel '{args.papel}' concedido a {username}.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
