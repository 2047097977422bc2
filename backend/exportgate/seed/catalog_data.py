"""Strategic items list (Malaysian Strategic Trade Act 2010 control list extract)."""

from datetime import date

CONTROL_LIST_SOURCE = "Malaysia_Strategic_2025"
EFFECTIVE_DATE = date(2025, 1, 1)

_STA = {"deadline_days": 30, "authority": "MITI", "mandatory": True}
_AICA = {"deadline_days": 14, "authority": "MCMC", "mandatory": True}
_TECHDOCS = {"deadline_days": 7, "authority": "Internal", "mandatory": True}
_SIRIM = {"deadline_days": 21, "authority": "SIRIM", "mandatory": True}
_CYBER = {"deadline_days": 21, "authority": "CyberSecurity Malaysia", "mandatory": True}

STRATEGIC_ITEMS = [
    # Electronics & Semiconductors
    {
        "code": "3A001.a.1",
        "description": "Electronic computers and related equipment having any of the following characteristics, and specially designed components therefor",
        "category": "Electronics",
        "subcategory": "Computers",
        "keywords": ["computer", "processor", "AI accelerator", "neural processing", "machine learning"],
        "technical_thresholds": {
            "performance_threshold": {"field": "tpp", "above": 4800, "unit": "Weighted TeraFLOPS"},
            "process_node": {"field": "process_node_nm", "at_most": 16},
            "ai_accelerator": True,
            "hs_code_patterns": ["8542.31"],
        },
        "required_permits": ["STA_2010", "AICA", "TechDocs"],
        "permit_deadlines": {"STA_2010": _STA, "AICA": _AICA, "TechDocs": _TECHDOCS},
    },
    {
        "code": "4A003.u",
        "description": "Digital computers, electronic assemblies and components therefor, other than those specified in 4A001",
        "category": "Electronics",
        "subcategory": "Digital Systems",
        "keywords": ["digital computer", "electronic assembly", "processing unit", "computing system"],
        "technical_thresholds": {
            "processing_capability": "High-performance computing",
            "dual_use_potential": True,
        },
        "required_permits": ["STA_2010", "AICA", "TechDocs"],
        "permit_deadlines": {"STA_2010": _STA, "AICA": _AICA, "TechDocs": _TECHDOCS},
    },
    # Network equipment
    {
        "code": "5A002.a",
        "description": "Systems, equipment and components for information security",
        "category": "Telecommunications",
        "subcategory": "Security Equipment",
        "keywords": ["network switch", "router", "telecommunications", "high-speed", "switching"],
        "technical_thresholds": {
            "encryption_capability": True,
            "security_level": "High",
            "hs_code_patterns": ["8517.62"],
        },
        "required_permits": ["STA_2010", "SIRIM"],
        "permit_deadlines": {"STA_2010": _STA, "SIRIM": _SIRIM},
    },
    # Memory & storage
    {
        "code": "3A001.a.3",
        "description": "Electronic assemblies, modules and equipment, and specially designed components therefor",
        "category": "Electronics",
        "subcategory": "Memory Systems",
        "keywords": ["memory module", "RAM", "server memory", "high-capacity", "DDR"],
        "technical_thresholds": {
            "memory_capacity": {"field": "memory_gb", "at_least": 64},
            "server_grade": True,
        },
        "required_permits": ["STA_2010"],
        "permit_deadlines": {"STA_2010": _STA},
    },
    # Fiber optics
    {
        "code": "6A002.a",
        "description": "Optical fibres, optical fibre cables and optical fibre assemblies",
        "category": "Telecommunications",
        "subcategory": "Optical Systems",
        "keywords": ["fiber optic", "optical cable", "high-speed transmission", "data communication"],
        "technical_thresholds": {
            "transmission_capability": "High-speed data transmission",
            "fiber_type": "Single-mode or Multi-mode",
            "hs_code_patterns": ["9001.10"],
        },
        "required_permits": ["STA_2010"],
        "permit_deadlines": {"STA_2010": _STA},
    },
    # Software & encryption
    {
        "code": "5D002",
        "description": "Software for information security systems, equipment and components",
        "category": "Software",
        "subcategory": "Security Software",
        "keywords": ["encryption software", "cryptographic", "security software", "information security"],
        "technical_thresholds": {
            "encryption_strength_bits": {"field": "key_length_bits", "at_least": 128},
            "cryptographic_capability": True,
        },
        "required_permits": ["STA_2010", "AICA", "CyberSecurity"],
        "permit_deadlines": {"STA_2010": _STA, "AICA": _AICA, "CyberSecurity": _CYBER},
    },
]


def embedding_text(item: dict) -> str:
    """Text embedded for a catalog entry: description, keywords, category, subcategory."""
    return " ".join([
        item["description"],
        " ".join(item["keywords"]),
        item["category"],
        item.get("subcategory") or "",
    ]).strip()
