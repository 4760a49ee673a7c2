"""Field-service CRM backend"""
