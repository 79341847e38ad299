"""
Intent & Entity Extractor
Stage 1: rule-based tables (greeting/farewell, program, semester, schedule track,
faculty, topic intents) followed by a disambiguation post-pass.
Stage 2: optional AI extraction, merged as set union, only when the rules found
nothing usable.
"""
import re
import logging
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from app.services.ai_capabilities import EntityExtractorAI, NullAI, parse_json_reply
from app.services.entity_schema import ExtractedEntities, Intent, ScheduleTrack, CONVERSATIONAL_INTENTS
from app.services.errors import CollaboratorUnavailableError
from app.services.text_utils import normalize

logger = logging.getLogger(__name__)

_LEAD = r"^[\s¡¿!,.]*"

GREETING_PATTERN = re.compile(
    _LEAD + r"(?:(?:hola|buen[oa]s?\s*dias?|buenas?\s*(?:tardes?|noches?)|hey|saludos?|que\s*tal"
    r"|hello|hi|good\s+(?:morning|afternoon|evening))[\s,!?.]*)+$"
)
FAREWELL_PATTERN = re.compile(
    _LEAD + r"(?:adios|chao|hasta\s*luego|hasta\s*pronto|bye|gracias|nos\s*vemos|goodbye|see\s+you|thanks?\b|thank\s+you)"
)

INGENIERIA_INDUSTRIAL = "INGENIERIA INDUSTRIAL"
INGENIERIA_SISTEMAS = "INGENIERIA DE SISTEMAS"
INGENIERIA_MECANICA = "INGENIERIA MECANICA"
INGENIERIA_AMBIENTAL = "INGENIERIA AMBIENTAL"
INGENIERIA_ALIMENTOS = "INGENIERIA DE ALIMENTOS"
INGENIERIA_AGRONOMICA = "INGENIERIA AGRONOMICA"
ADMINISTRACION_FINANZAS = "ADMINISTRACION EN FINANZAS Y NEGOCIOS INTERNACIONALES"
VETERINARIA = "MEDICINA VETERINARIA Y ZOOTECNIA"

# Program keyword tiers. The first tier with any match wins; inside a tier the
# first matching pattern wins.
PROGRAM_FULL_PHRASES: Tuple[Tuple[str, str], ...] = (
    (r"ingenieria\s+industrial", INGENIERIA_INDUSTRIAL),
    (r"ingenieria\s+de\s+sistemas", INGENIERIA_SISTEMAS),
    (r"ingenieria\s+mecanica", INGENIERIA_MECANICA),
    (r"ingenieria\s+ambiental", INGENIERIA_AMBIENTAL),
    (r"ingenieria\s+de\s+alimentos", INGENIERIA_ALIMENTOS),
    (r"ingenieria\s+agronomica", INGENIERIA_AGRONOMICA),
    (r"industrial\s+engineering", INGENIERIA_INDUSTRIAL),
    (r"(?:systems|computer)\s+engineering", INGENIERIA_SISTEMAS),
    (r"mechanical\s+engineering", INGENIERIA_MECANICA),
    (r"environmental\s+engineering", INGENIERIA_AMBIENTAL),
    (r"food\s+engineering", INGENIERIA_ALIMENTOS),
    (r"medicina\s+veterinaria", VETERINARIA),
    (r"administracion\s+en\s+salud|administracion.*\bsalud\b|\bsalud\b.*administracion", "ADMINISTRACION EN SALUD"),
    (r"negocios\s+internacionales", ADMINISTRACION_FINANZAS),
    (r"desarrollo\s+de\s+software", "TECNOLOGIA EN DESARROLLO DE SOFTWARE"),
    (r"programacion\s+web", "TECNICO PROFESIONAL EN PROGRAMACION WEB"),
    (r"regencia\s+de\s+farmacia", "TECNOLOGIA EN REGENCIA DE FARMACIA"),
    (r"ciencias\s+naturales", "LICENCIATURA EN CIENCIAS NATURALES Y EDUCACION AMBIENTAL"),
    (r"ciencias\s+sociales", "LICENCIATURA EN CIENCIAS SOCIALES"),
    (r"educacion\s+artistica", "LICENCIATURA EN EDUCACION ARTISTICA"),
    (r"educacion\s+infantil", "LICENCIATURA EN EDUCACION INFANTIL"),
    (r"educacion\s+fisica", "LICENCIATURA EN EDUCACION FISICA RECREACION Y DEPORTE"),
    (r"informatica\s+y\s+medios|medios\s+audiovisuales", "LICENCIATURA EN INFORMATICA Y MEDIOS AUDIOVISUALES"),
    (r"lenguas\s+extranjeras", "LICENCIATURA EN LENGUAS EXTRANJERAS CON ENFASIS EN INGLES"),
    (r"lengua\s+castellana", "LICENCIATURA EN LITERATURA Y LENGUA CASTELLANA"),
)

PROGRAM_PARTIAL_FORMS: Tuple[Tuple[str, str], ...] = (
    (r"ingenieria\s+industri", INGENIERIA_INDUSTRIAL),
    (r"ingenieria\s+sistem", INGENIERIA_SISTEMAS),
    (r"\bing\.?\s+industri", INGENIERIA_INDUSTRIAL),
    (r"\bing\.?\s+sistem", INGENIERIA_SISTEMAS),
    (r"\bing\.?\s+mecanic", INGENIERIA_MECANICA),
    (r"\bing\.?\s+ambient", INGENIERIA_AMBIENTAL),
    (r"\bing\.?\s+alimento", INGENIERIA_ALIMENTOS),
    (r"\bing\.?\s+agronom", INGENIERIA_AGRONOMICA),
    (r"\blic\w*\.?\s+(?:en\s+)?ingles", "LICENCIATURA EN LENGUAS EXTRANJERAS CON ENFASIS EN INGLES"),
    (r"\blic\w*\.?\s+(?:en\s+)?literatura", "LICENCIATURA EN LITERATURA Y LENGUA CASTELLANA"),
    (r"\blic\w*\.?\s+(?:en\s+)?informatica", "LICENCIATURA EN INFORMATICA Y MEDIOS AUDIOVISUALES"),
    (r"\blic\w*\.?\s+(?:en\s+)?(?:educacion\s+)?artistica", "LICENCIATURA EN EDUCACION ARTISTICA"),
    (r"\blic\w*\.?\s+(?:en\s+)?(?:educacion\s+)?infantil", "LICENCIATURA EN EDUCACION INFANTIL"),
)

PROGRAM_BARE_KEYWORDS: Tuple[Tuple[str, str], ...] = (
    (r"industri(?:a|al)", INGENIERIA_INDUSTRIAL),
    (r"\bsistemas\b", INGENIERIA_SISTEMAS),
    (r"\bmecanica\b", INGENIERIA_MECANICA),
    (r"\bambiental\b", INGENIERIA_AMBIENTAL),
    (r"\balimentos\b", INGENIERIA_ALIMENTOS),
    (r"agronomica|agronomia", INGENIERIA_AGRONOMICA),
    (r"veterinaria|zootecnia", VETERINARIA),
    (r"enfermeria|nursing", "ENFERMERIA"),
    (r"\bderecho\b|\blaw\b", "DERECHO"),
    (r"finanzas", ADMINISTRACION_FINANZAS),
    (r"acuicultura", "ACUICULTURA"),
    (r"\bbiologia\b|\bbiology\b", "BIOLOGIA"),
    (r"\bquimica\b|\bchemistry\b", "QUIMICA"),
    (r"\bfisica\b|\bphysics\b", "FISICA"),
    (r"estadistica|statistics", "ESTADISTICA"),
    (r"geografia|geography", "GEOGRAFIA"),
    (r"matematicas", "MATEMATICAS"),
    (r"bacteriolog", "BACTERIOLOGIA"),
    (r"regencia|farmacia", "TECNOLOGIA EN REGENCIA DE FARMACIA"),
    (r"software", "TECNOLOGIA EN DESARROLLO DE SOFTWARE"),
)

PROGRAM_TIERS: Tuple[Tuple[Tuple[re.Pattern, str], ...], ...] = tuple(
    tuple((re.compile(pattern), name) for pattern, name in tier)
    for tier in (PROGRAM_FULL_PHRASES, PROGRAM_PARTIAL_FORMS, PROGRAM_BARE_KEYWORDS)
)

SEMESTER_ORDINALS: Tuple[Tuple[str, str], ...] = (
    ("primer", "1"), ("primero", "1"), ("1er", "1"), ("1ro", "1"), ("1°", "1"),
    ("segundo", "2"), ("2do", "2"), ("2°", "2"),
    ("tercer", "3"), ("tercero", "3"), ("3er", "3"), ("3ro", "3"), ("3°", "3"),
    ("cuarto", "4"), ("4to", "4"), ("4°", "4"),
    ("quinto", "5"), ("5to", "5"), ("5°", "5"),
    ("sexto", "6"), ("6to", "6"), ("6°", "6"),
    ("septimo", "7"), ("7mo", "7"), ("7°", "7"),
    ("octavo", "8"), ("8vo", "8"), ("8°", "8"),
    ("noveno", "9"), ("9no", "9"), ("9°", "9"),
    ("decimo", "10"), ("10mo", "10"), ("10°", "10"),
    ("first", "1"), ("1st", "1"), ("second", "2"), ("2nd", "2"), ("third", "3"), ("3rd", "3"),
    ("fourth", "4"), ("4th", "4"), ("fifth", "5"), ("5th", "5"), ("sixth", "6"), ("6th", "6"),
    ("seventh", "7"), ("7th", "7"), ("eighth", "8"), ("8th", "8"), ("ninth", "9"), ("9th", "9"),
    ("tenth", "10"), ("10th", "10"),
)
_SEMESTER_ORDINAL_PATTERNS = tuple(
    (re.compile(r"(?<![a-z0-9])" + re.escape(word) + r"(?![a-z0-9])"), number)
    for word, number in SEMESTER_ORDINALS
)
SEMESTER_NUMBER_PATTERN = re.compile(r"\b(?:semestre|semester|sem)\.?\s*(\d{1,2})\b")
MAX_SEMESTER = 10

SCHEDULE_TRACK_KEYWORDS: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("diurn", "daytime"), ScheduleTrack.DAY),
    (("nocturn", "evening", "night"), ScheduleTrack.EVENING),
    (("distancia", "distance"), ScheduleTrack.DISTANCE),
    (("sabatin", "weekend"), ScheduleTrack.WEEKEND),
)

FACULTY_PATTERNS: Tuple[Tuple[re.Pattern, str], ...] = tuple(
    (re.compile(pattern), name) for pattern, name in (
        (r"ingenieria|ingenierias|\bing\b|engineering", "FACULTAD DE INGENIERIAS"),
        (r"agricola|agricolas|agronomia|\bagro\b|agricultur", "FACULTAD DE CIENCIAS AGRICOLAS"),
        (r"ciencias\s*basicas|basicas|fisica|quimica|biologia|estadistica|matematica|geografia",
         "FACULTAD DE CIENCIAS BASICAS"),
        (r"salud|enfermeria|medicina(?!\s*veterinaria)|bacteriologia|health", "FACULTAD DE CIENCIAS DE LA SALUD"),
        (r"economica|juridica|administrativa|derecho|administracion|finanzas|comercio",
         "FACULTAD DE CIENCIAS ECONOMICAS, JURIDICAS Y ADMINISTRATIVAS"),
        (r"educacion|humanas|pedagogia|licenciatura|sociales", "FACULTAD DE EDUCACION Y CIENCIAS HUMANAS"),
        (r"veterinaria|zootecnia|animal", "FACULTAD DE MEDICINA VETERINARIA Y ZOOTECNIA"),
    )
)

ADMISSIONS_PATTERN = re.compile(
    r"admision|admissions?|inscripcion|inscribirme|enrol+ment"
    r"|proceso\s*(?:de\s*)?(?:admision|inscripcion|entrada|ingreso|seleccion)"
    r"|requisitos?\s*(?:de\s*)?ingreso|como\s*(?:entro|ingreso|me\s*inscribo)"
    r"|puedo\s*(?:entrar|ingresar|aspirar)|puntaje|icfes|saber\s*11|aspirante|aspirar"
    r"|simulador|simulator|ponderado|nota\s*de\s*corte|corte\s*de\s*admision|cut-?off"
    r"|calcular\s*(?:mi\s*)?puntaje"
)
CURRICULUM_PATTERN = re.compile(
    r"materias?|asignaturas?|pensum|plan\s+de\s+estudios?|malla\s+curricular|curriculum|\bsubjects?\b"
)
CREDITS_PATTERN = re.compile(r"creditos?|\bcredits?\b")
FACULTY_WORD_PATTERN = re.compile(r"facultad|facultades|facult(?:y|ies)")
PROGRAM_WORD_PATTERN = re.compile(r"\bprogramas?\b|\bcarreras?\b|\bprograms?\b|\bdegrees?\b")
SCHEDULE_WORD_PATTERN = re.compile(r"jornada|horario|schedule")
LISTING_PATTERN = re.compile(
    r"\blistar?\b|lista\s+de|\bcuales\b|\btodos\b|\btodas\b|\bcuant[oa]s\b"
    r"|que\s+(?:programas|carreras|facultades|materias)\s+(?:hay|ofrece|tiene)"
    r"|\blist\b|\bwhich\b|\bhow\s+many\b|what\s+(?:programs|faculties|courses|subjects)"
)
LISTING_COURSES_PATTERN = re.compile(r"materias|asignaturas|cursos|courses|subjects")
COURSE_NAME_PATTERN = re.compile(
    r"(?:materia|asignatura|curso|course|subject)\s+(?:de\s+|llamad[ao]\s+|called\s+)?"
    r"[\"'“«]([^\"'”»]{3,80})[\"'”»]"
)

# Slots collected by the matching pass, read by the topic rules
Slots = Dict[str, List[str]]
TopicRule = Callable[[str, Slots], bool]


def _matches(pattern: re.Pattern) -> TopicRule:
    return lambda text, slots: bool(pattern.search(text))


def _listing_target(text: str) -> Optional[Intent]:
    """Which listing is asked for, if any"""
    if not LISTING_PATTERN.search(text):
        return None
    if PROGRAM_WORD_PATTERN.search(text):
        return Intent.LIST_PROGRAMS
    if LISTING_COURSES_PATTERN.search(text):
        return Intent.LIST_COURSES
    if FACULTY_WORD_PATTERN.search(text):
        return Intent.LIST_FACULTIES
    return Intent.LIST_PROGRAMS


def _lists(intent: Intent) -> TopicRule:
    return lambda text, slots: _listing_target(text) is intent


# Topic intents, evaluated independently in this order; several may fire
TOPIC_RULES: Tuple[Tuple[TopicRule, Intent], ...] = (
    (_matches(ADMISSIONS_PATTERN), Intent.ADMISSIONS_INFO),
    (_matches(CURRICULUM_PATTERN), Intent.CURRICULUM_INFO),
    (lambda text, slots: bool(slots["courses"]), Intent.COURSE_INFO),
    (_matches(CREDITS_PATTERN), Intent.CREDITS),
    (lambda text, slots: bool(slots["faculties"]) or bool(FACULTY_WORD_PATTERN.search(text)), Intent.FACULTY_INFO),
    (_matches(PROGRAM_WORD_PATTERN), Intent.PROGRAM_INFO),
    (_lists(Intent.LIST_FACULTIES), Intent.LIST_FACULTIES),
    (_lists(Intent.LIST_PROGRAMS), Intent.LIST_PROGRAMS),
    (_lists(Intent.LIST_COURSES), Intent.LIST_COURSES),
    (lambda text, slots: bool(slots["schedule_tracks"]) or bool(SCHEDULE_WORD_PATTERN.search(text)),
     Intent.SCHEDULE_TRACK),
)


class EntityExtractor:
    """Turns a raw utterance into ExtractedEntities. Never raises."""

    MIN_CATALOG_QUERY_LENGTH = 4

    def __init__(self, ai: Optional[EntityExtractorAI] = None, known_programs: Optional[Sequence[str]] = None):
        self.ai = ai or NullAI()
        self.known_programs = list(known_programs or [])

    # ------------------------------------------------------------------
    # Stage 1: rules
    # ------------------------------------------------------------------

    def detect_program(self, normalized: str) -> Optional[str]:
        for tier in PROGRAM_TIERS:
            for pattern, program in tier:
                if pattern.search(normalized):
                    return program
        # Last resort: the whole utterance is part of a known program name
        if len(normalized) >= self.MIN_CATALOG_QUERY_LENGTH:
            for program in self.known_programs:
                if normalized in normalize(program):
                    return program
        return None

    def detect_semester(self, normalized: str) -> Optional[str]:
        for pattern, number in _SEMESTER_ORDINAL_PATTERNS:
            if pattern.search(normalized):
                return number
        match = SEMESTER_NUMBER_PATTERN.search(normalized)
        if match and 1 <= int(match.group(1)) <= MAX_SEMESTER:
            return str(int(match.group(1)))
        return None

    def detect_schedule_tracks(self, normalized: str) -> List[str]:
        return [
            track for keywords, track in SCHEDULE_TRACK_KEYWORDS
            if any(keyword in normalized for keyword in keywords)
        ]

    def detect_faculty(self, normalized: str) -> Optional[str]:
        for pattern, faculty in FACULTY_PATTERNS:
            if pattern.search(normalized):
                return faculty
        return None

    def detect_course(self, normalized: str) -> Optional[str]:
        match = COURSE_NAME_PATTERN.search(normalized)
        if match:
            return match.group(1).strip().upper()
        return None

    def extract_with_rules(self, utterance: str) -> ExtractedEntities:
        """Deterministic rule-based extraction"""
        normalized = normalize(utterance)

        # Greetings/farewells never carry other entities
        if GREETING_PATTERN.match(normalized):
            return ExtractedEntities(intents=(Intent.GREETING,), raw_query=utterance)
        if FAREWELL_PATTERN.match(normalized):
            return ExtractedEntities(intents=(Intent.FAREWELL,), raw_query=utterance)

        slots: Slots = {"programs": [], "semesters": [], "schedule_tracks": [], "faculties": [], "courses": []}
        program = self.detect_program(normalized)
        if program:
            slots["programs"].append(program)
        semester = self.detect_semester(normalized)
        if semester:
            slots["semesters"].append(semester)
        slots["schedule_tracks"] = self.detect_schedule_tracks(normalized)
        faculty = self.detect_faculty(normalized)
        if faculty:
            slots["faculties"].append(faculty)
        course = self.detect_course(normalized)
        if course:
            slots["courses"].append(course)

        intents = [intent for rule, intent in TOPIC_RULES if rule(normalized, slots)]

        entities = ExtractedEntities(
            faculties=tuple(slots["faculties"]),
            programs=tuple(slots["programs"]),
            courses=tuple(slots["courses"]),
            semesters=tuple(slots["semesters"]),
            schedule_tracks=tuple(slots["schedule_tracks"]),
            intents=tuple(intents) or (Intent.GENERAL,),
            raw_query=utterance,
        )
        return self.disambiguate(entities)

    def disambiguate(self, entities: ExtractedEntities) -> ExtractedEntities:
        """A listing-by-faculty query outranks an incidental program keyword"""
        if (
            entities.has_intent(Intent.LIST_PROGRAMS, Intent.LIST_FACULTIES)
            and entities.faculties
            and entities.programs
        ):
            logger.debug(f"Listing by faculty {entities.faculties[0]}, discarding program {entities.programs[0]}")
            return replace(entities, programs=())
        return entities

    # ------------------------------------------------------------------
    # Stage 2: AI merge
    # ------------------------------------------------------------------

    @staticmethod
    def has_enough_entities(entities: ExtractedEntities) -> bool:
        if entities.is_conversational:
            return True
        if entities.faculties or entities.programs or entities.courses:
            return True
        return entities.is_listing

    @staticmethod
    def parse_ai_entities(reply: str, utterance: str) -> ExtractedEntities:
        """Build entities from the AI JSON reply. Raises ValueError/KeyError/TypeError on bad shape."""
        data = parse_json_reply(reply)

        def strings(key: str) -> Tuple[str, ...]:
            values = data.get(key) or []
            if not isinstance(values, list):
                raise TypeError(f"'{key}' must be a list")
            return tuple(str(value).strip() for value in values if str(value).strip())

        semesters = tuple(
            str(int(value)) for value in strings("semesters")
            if value.isdigit() and 1 <= int(value) <= MAX_SEMESTER
        )
        intents = []
        for label in strings("intents"):
            intent = Intent.parse(label)
            # Greetings/farewells are decided by the rules alone
            if intent is not None and intent not in CONVERSATIONAL_INTENTS:
                intents.append(intent)

        return ExtractedEntities(
            faculties=tuple(value.upper() for value in strings("faculties")),
            programs=tuple(value.upper() for value in strings("programs")),
            courses=tuple(value.upper() for value in strings("courses")),
            semesters=semesters,
            schedule_tracks=tuple(value.upper() for value in strings("schedule_tracks")),
            intents=tuple(intents) or (Intent.GENERAL,),
            raw_query=utterance,
        )

    @staticmethod
    def merge_entities(rules: ExtractedEntities, ai: ExtractedEntities) -> ExtractedEntities:
        """Field-wise set union, rule-based values first"""
        intents = list(rules.intents) + [intent for intent in ai.intents if intent not in rules.intents]
        if any(intent is not Intent.GENERAL for intent in intents):
            intents = [intent for intent in intents if intent is not Intent.GENERAL]
        return ExtractedEntities(
            faculties=rules.faculties + ai.faculties,
            programs=rules.programs + ai.programs,
            courses=rules.courses + ai.courses,
            semesters=rules.semesters + ai.semesters,
            schedule_tracks=rules.schedule_tracks + ai.schedule_tracks,
            intents=tuple(intents),
            raw_query=rules.raw_query,
        )

    def extract(self, utterance: str) -> ExtractedEntities:
        """Rules first; the AI is consulted only when the rules found nothing usable"""
        rules = self.extract_with_rules(utterance)
        if self.has_enough_entities(rules):
            return rules

        try:
            reply = self.ai.extract_entities(utterance)
            if reply is None:
                return rules
            merged = self.merge_entities(rules, self.parse_ai_entities(reply, utterance))
        except (ValueError, KeyError, TypeError, CollaboratorUnavailableError) as e:
            logger.warning(f"AI entity extraction failed, using rules only: {e}")
            return rules

        logger.info(f"Entities merged with AI extraction: {merged.to_dict()}")
        return merged
