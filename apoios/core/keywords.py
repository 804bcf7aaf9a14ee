"""
Keyword and pattern tables used by discovery, extraction and classification.

Everything here is plain data so tables can be tested and extended without
touching control flow. Phrases are written in natural PT/EN spelling; callers
normalize them (lowercase, no diacritics) before matching.
"""

import re
from collections import OrderedDict

from apoios.core.domain_models import ProgramStatus, SupportCategory

CORE_KEYWORDS = (
    # PT
    "apoio", "apoios", "candidatura", "candidaturas", "aviso", "avisos",
    "edificio", "edifícios", "habitacao", "habitação", "reabilitacao",
    "reabilitação", "eficiencia energetica", "eficiência energética",
    # EN
    "support", "grant", "funding", "application", "building", "buildings",
    "housing", "rehabilitation", "energy efficiency",
)

JANELAS_KEYWORDS = (
    "janelas eficientes", "janela", "caixilharia", "vidro duplo",
    "vidro triplo", "envidraçado", "vãos envidraçados", "caixilhos",
    "efficient windows", "window", "glazing", "double glazing",
    "triple glazing", "window frames", "fenestration",
)

BOMBAS_CALOR_KEYWORDS = (
    "bomba de calor", "bombas de calor", "aquecimento aerotérmico",
    "geotérmico", "climatização eficiente", "aerotermia",
    "heat pump", "heat pumps", "aerothermal", "geothermal",
    "air source heat pump", "ground source heat pump",
)

ISOLAMENTO_KEYWORDS = (
    "isolamento térmico", "capoto", "etics", "isolamento paredes",
    "isolamento fachadas", "revestimento térmico", "isolamento exterior",
    "thermal insulation", "wall insulation", "facade insulation",
    "external insulation", "cavity wall", "insulation material",
)

SOLAR_KEYWORDS = (
    "solar fotovoltaico", "painéis solares", "fotovoltaico",
    "autoconsumo", "energia solar", "painel solar", "módulos fotovoltaicos",
    "solar photovoltaic", "solar panels", "photovoltaic", "pv panels",
    "self-consumption", "solar energy", "solar power",
)

AQUECIMENTO_AGUAS_KEYWORDS = (
    "aquecimento de águas", "águas quentes sanitárias", "aqs",
    "solar térmico", "termoacumulador", "esquentador",
    "water heating", "domestic hot water", "dhw", "solar thermal",
    "water heater", "hot water system",
)

COBERTURA_KEYWORDS = (
    "cobertura", "telhado", "isolamento cobertura", "telhas",
    "impermeabilização", "isolamento telhado", "sótão",
    "roof", "roofing", "roof insulation", "attic insulation",
    "loft insulation", "waterproofing",
)

# Declaration order doubles as the default tie-break precedence
SUPPORT_CATEGORY_KEYWORDS = OrderedDict([
    (SupportCategory.JANELAS, JANELAS_KEYWORDS),
    (SupportCategory.BOMBAS_CALOR, BOMBAS_CALOR_KEYWORDS),
    (SupportCategory.ISOLAMENTO, ISOLAMENTO_KEYWORDS),
    (SupportCategory.SOLAR, SOLAR_KEYWORDS),
    (SupportCategory.AQUECIMENTO_AGUAS, AQUECIMENTO_AGUAS_KEYWORDS),
    (SupportCategory.COBERTURA, COBERTURA_KEYWORDS),
])

GENERIC_ENERGY_TERMS = (
    "eficiência energética", "energy efficiency", "energy saving",
    "energia renovável", "renewable energy", "reabilitação energética",
    "energy retrofit", "descarbonização", "decarbonization", "carbon neutral",
)

ENERGY_KEYWORDS = (
    CORE_KEYWORDS
    + JANELAS_KEYWORDS
    + BOMBAS_CALOR_KEYWORDS
    + ISOLAMENTO_KEYWORDS
    + SOLAR_KEYWORDS
    + AQUECIMENTO_AGUAS_KEYWORDS
    + COBERTURA_KEYWORDS
    + (
        "isolamento", "janelas", "bomba de calor", "painel solar",
        "fotovoltaico", "vale eficiencia", "vale eficiência",
        "renewable energy", "energia renovável",
    )
)

APPLICATION_INTENT_KEYWORDS = (
    "candidatura", "candidaturas", "candidatar", "aviso", "avisos",
    "concurso", "concursos", "beneficiario", "beneficiarios", "submissao",
    "submissões", "submeter", "inscricao", "inscrição", "regulamento",
    "formulario", "formulário",
    "application", "apply", "submission", "submit", "registration",
    "register", "funding", "grant", "eligibility",
)

BLOCKED_DISCOVERY_MARKERS = (
    # PT
    "skip to content", "saltar para o conteudo principal",
    "saltar para o conteúdo principal", "politica de privacidade",
    "política de privacidade", "aviso de privacidade", "cookies",
    "mapa do site", "termos e condicoes", "termos e condições", "contactos",
    "contacte-nos", "canal de denuncias", "canal de denúncias", "rss",
    "login", "registar", "área reservada", "ver detalhes",
    "ver se sou elegivel", "guardar",
    # EN
    "privacy policy", "cookie policy", "terms and conditions", "contact us",
    "sitemap", "sign in", "sign up", "register", "view details", "save",
)

BLOCKED_TITLE_PATTERNS = tuple(re.compile(p, re.IGNORECASE) for p in (
    r"^ignorar links",
    r"^skip to",
    r"^saltar para",
    r"canal de den[uú]ncias",
    r"pol[ií]tica de privacidade",
    r"privacy policy",
    r"cookie policy",
    r"termos (e )?condi[çc][oõ]es",
    r"terms (and )?conditions",
    r"contactos?$",
    r"contact us$",
    r"^mapa do site$",
    r"^sitemap$",
    r"^rss$",
    r"^login$",
    r"^regist[ao]r?$",
))

# Ordered: the first group whose pattern matches a heading wins
SECTION_PATTERNS = OrderedDict((name, tuple(re.compile(p, re.IGNORECASE) for p in patterns)) for name, patterns in (
    ("how_to_apply", (
        r"como\s+se\s+candidatar", r"candidatura", r"como\s+candidatar",
        r"submiss[aã]o", r"como\s+submeter", r"processo\s+de\s+candidatura",
        r"how\s+to\s+apply", r"application\s+process", r"apply\s+now",
        r"submit\s+application",
    )),
    ("beneficiaries", (
        r"benefici[aá]rios", r"quem\s+pode\s+candidatar", r"destinat[aá]rios",
        r"p[uú]blico[\s-]alvo", r"entidades\s+eleg[ií]veis", r"beneficiaries",
        r"who\s+can\s+apply", r"eligible\s+applicants", r"target\s+audience",
        r"eligibility",
    )),
    ("documents", (
        r"documentos?\s+(necess[aá]rios?|exigidos?|obrigat[oó]rios?)",
        r"documenta[çc][aã]o", r"anexos?\s+obrigat[oó]rios", r"formul[aá]rios",
        r"required\s+documents?", r"documentation", r"supporting\s+documents?",
        r"attachments?",
    )),
    ("legislation", (
        r"legisla[çc][aã]o\s+aplic[aá]vel", r"enquadramento\s+legal",
        r"base\s+legal", r"regulamento", r"applicable\s+legislation",
        r"legal\s+framework", r"regulations?",
    )),
    ("amount", (
        r"montante", r"valor\s+do\s+apoio", r"financiamento", r"incentivo",
        r"comparticipa[çc][aã]o", r"amount", r"funding", r"grant\s+value",
        r"support\s+value", r"incentive",
    )),
    ("deadline", (
        r"prazo", r"data\s+limite", r"encerramento",
        r"candidaturas\s+abertas\s+at[eé]", r"deadline", r"closing\s+date",
        r"applications?\s+close", r"until",
    )),
    ("what_is", (
        r"o\s+que\s+[eé]", r"descri[çc][aã]o", r"sobre\s+o\s+programa",
        r"apresenta[çc][aã]o", r"what\s+is", r"about\s+the\s+program",
        r"overview", r"description",
    )),
    ("faq", (
        r"perguntas\s+frequentes", r"faqs?", r"d[uú]vidas",
        r"frequently\s+asked", r"questions",
    )),
))

APPLICATION_LINK_PATTERNS = tuple(re.compile(p, re.IGNORECASE) for p in (
    r"candidatar", r"submeter", r"inscrever", r"formul[aá]rio",
    r"aceder.*plataforma", r"apply", r"submit", r"register",
    r"application\s+form",
))

# Matched against normalized (diacritic-free) text, in this order
STATUS_RULES = (
    (ProgramStatus.OPEN, re.compile(
        r"\b(aberto|abertas?|abertura|em\s+curso|submissoes\s+abertas|open|active)\b")),
    (ProgramStatus.CLOSED, re.compile(
        r"encerrad[oa]s?|fechad[oa]s?|terminad[oa]s?|expirad[oa]s?|\bclosed\b|\bexpired\b")),
    (ProgramStatus.PLANNED, re.compile(
        r"\bbreve\b|previst[oa]s?|futur[oa]s?|a\s+abrir|coming\s+soon|\bplanned\b")),
)

MUNICIPAL_DISCOVERY_PATHS = (
    "/habitacao",
    "/reabilitacao-urbana",
    "/acao-social",
    "/ambiente",
    "/energia",
    "/urbanismo",
    "/regulamentos",
    "/avisos",
    "/editais",
    "/candidaturas",
)
