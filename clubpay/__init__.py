"""
clubpay: moteur de sélection et de paiement des abonnements/séances du club.
"""
