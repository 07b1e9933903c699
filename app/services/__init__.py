"""
Services module for the booking API

This module includes all service-related modules, which implement the business logic of the application:
catalog reads, availability, bookings, waitlist and recurring bookings.
Services interact with models, repositories, and Redis (booking events).
"""

# Inicializador del paquete services
