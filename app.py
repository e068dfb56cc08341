# app.py
"""
Point d'entrée de l'application.

Usage :
  python app.py login
  python app.py dashboard
  python app.py products list --page 2
  python app.py inventories import inventaires.xlsx
  python app.py permissions set 3 --perm "view domains" --perm "edit domains"
"""

from equipements.adapters.cli import main

if __name__ == "__main__":
    main()
