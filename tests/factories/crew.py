"""
Crew test factory.

Generates field crews with a leader and members.
"""

import factory
from faker import Faker

fake = Faker("es_ES")


class CrewFactory(factory.Factory):
    """
    Factory for generating crew payloads.

    Usage:
        payload = CrewFactory()
        payload = CrewFactory(isActive=False)
    """

    class Meta:
        model = dict

    name = factory.Sequence(lambda n: f"Cuadrilla {n:03d}")
    leaderName = factory.LazyFunction(fake.name)
    members = factory.LazyFunction(lambda: [fake.name() for _ in range(2)])
    vehicles = factory.LazyFunction(lambda: [{"id": fake.bothify("VH-###"), "name": "Camioneta"}])
    isActive = True


class InactiveCrewFactory(CrewFactory):
    isActive = False
