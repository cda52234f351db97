"""
Module 'catalog': données de référence (adhérents du parent, activités, coordonnées du parent).
"""
