"""Sample transcripts with the values the parser is expected to extract.

Used for demos (``IntakeSession.load_scenario``) and as regression fixtures.
"""

SAMPLE_TRANSCRIPTS: list[dict] = [
    {
        "id": "uti_classic",
        "description": "Typical uncomplicated UTI presentation in a non-pregnant adult.",
        "text": (
            "28 year old female reports burning when passing urine and needing to pee "
            "every hour for the last 2 days. Denies fever, loin pain, or vaginal "
            "discharge. Not pregnant."
        ),
        "expected": {
            "complaintId": "urinary_symptoms",
            "rulePackId": "uti_women_16_64",
            "patient": {"age": 28, "sex": "female", "pregnant": "no"},
            "answers": {
                "dysuria": "yes",
                "frequency": "yes",
                "fever": "no",
                "loinPain": "no",
                "vaginalDischarge": "no",
                "durationDays": 2,
            },
        },
    },
    {
        "id": "feverpain_high",
        "description": "High FeverPAIN score with absence of cough.",
        "text": (
            "22-year-old woman with sore throat starting 2 days ago. Reports fever "
            "yesterday, pus on her tonsils, very inflamed throat, and no cough. Denies "
            "breathing difficulty or immunocompromise."
        ),
        "expected": {
            "complaintId": "sore_throat",
            "rulePackId": "sore_throat_feverpain",
            "patient": {"age": 22, "sex": "female", "pregnant": "unknown"},
            "answers": {
                "fever": "yes",
                "purulence": "yes",
                "inflamedTonsils": "yes",
                "noCough": "yes",
                "airwayCompromise": "no",
                "immunocompromise": "no",
                "durationDays": 2,
            },
        },
    },
    {
        "id": "ambiguous_dual",
        "description": "Overlapping complaints trigger low-confidence suggestions and warnings.",
        "text": (
            "35 yo male complains of throat irritation but mostly burning urine for 3 "
            "days. Mentions urinary frequency and no visible blood in urine. Pregnancy "
            "test negative."
        ),
        "expected": {
            "complaintId": "urinary_symptoms",
            "rulePackId": "uti_women_16_64",
            "patient": {"age": 35, "sex": "male", "pregnant": "no"},
            "answers": {
                "dysuria": "yes",
                "frequency": "yes",
                "visibleHaematuria": "no",
                "durationDays": 3,
            },
        },
    },
]


def get_sample(sample_id: str) -> dict:
    """Return a sample transcript by id.

    Raises:
        KeyError: if no sample has that id.
    """
    for sample in SAMPLE_TRANSCRIPTS:
        if sample["id"] == sample_id:
            return sample
    raise KeyError(f"Sample transcript {sample_id} not found")
