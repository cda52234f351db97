"""
Module 'payments' (feature-first): sélection, tarification et règlement des abonnements/séances.
Réunit machine d'état du brouillon, tarification, garde des mois payés, passerelles et orchestrateur.
"""
