"""
Tests for the principles & values parser
"""
import pytest
from app.services.principles_parser import (
    HEADER, Principle, extract_principles, find_principles_section,
    format_principles, should_parse_principles,
)

SECTION_INTRO = "Los principios y valores que se acogen para el programa de Derecho son los siguientes:\n"

PEP_TEXT = (
    "2. Fundamentos\n"
    "El programa se orienta por la mision institucional.\n"
    + SECTION_INTRO +
    "Responsabilidad: Cumplir con los compromisos adquiridos frente a la sociedad.\n"
    "Ética Profesional: Actuar con honestidad y transparencia en todas las dimensiones\n"
    "del ejercicio profesional 12\n"
    "Laboratorio: Espacio dotado con equipos para la practica de los estudiantes.\n"
    "Paz: Corto pero suficiente texto.\n"
    "Justicia: Dar a cada uno.\n"
    "3. Perfil Profesional\n"
    "Liderazgo: Capacidad de orientar equipos de trabajo interdisciplinarios.\n"
)

VALUE_NAMES = [
    "Respeto", "Honestidad", "Justicia", "Solidaridad", "Tolerancia", "Equidad",
    "Lealtad", "Libertad", "Prudencia", "Disciplina", "Autonomia", "Calidad",
    "Pertinencia", "Inclusion", "Excelencia", "Integridad", "Servicio",
]


class TestShouldParsePrinciples:
    @pytest.mark.parametrize("query", [
        "¿Cuáles son los principios del programa?",
        "what values guide the program",
        "¿Cuáles normas rigen el programa?",
        "VALORES de derecho",
    ])
    def test_principle_questions(self, query):
        assert should_parse_principles(query)

    def test_other_questions(self):
        assert not should_parse_principles("materias de derecho")


class TestExtractPrinciples:
    def test_sample_document(self):
        """Valid entries kept; excluded names, short names and short descriptions dropped"""
        assert extract_principles(PEP_TEXT) == [
            Principle("Responsabilidad", "Cumplir con los compromisos adquiridos frente a la sociedad."),
            Principle(
                "Ética Profesional",
                "Actuar con honestidad y transparencia en todas las dimensiones del ejercicio profesional",
            ),
        ]

    def test_section_stops_at_next_numbered_heading(self):
        section = find_principles_section(PEP_TEXT)
        assert section.startswith("Responsabilidad:")
        assert "Liderazgo" not in section

    def test_no_section(self):
        assert extract_principles("Responsabilidad: Cumplir con los compromisos adquiridos.") == []

    def test_empty_text(self):
        assert extract_principles("") == []

    def test_long_description_capped(self):
        principles = extract_principles(SECTION_INTRO + "Solidaridad: " + "a" * 600 + "\n")
        assert len(principles[0].description) == 500
        assert principles[0].description.endswith("...")

    def test_at_most_fifteen(self):
        lines = "".join(f"{name}: Descripcion suficientemente larga del valor {name}.\n" for name in VALUE_NAMES)
        principles = extract_principles(SECTION_INTRO + lines)
        assert len(principles) == 15
        assert [p.name for p in principles] == VALUE_NAMES[:15]


class TestFormatPrinciples:
    def test_numbered_list(self):
        principles = [
            Principle("Respeto", "Reconocer la dignidad de todas las personas."),
            Principle("Equidad", "Garantizar igualdad de oportunidades."),
        ]
        assert format_principles(principles) == (
            HEADER
            + "1. **Respeto**: Reconocer la dignidad de todas las personas.\n\n"
            + "2. **Equidad**: Garantizar igualdad de oportunidades.\n\n"
        )

    def test_empty(self):
        assert format_principles([]) == ""
