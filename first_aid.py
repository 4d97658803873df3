"""Offline first-aid guides, also used as the assistant's context."""
from typing import Any, Dict, List, Optional

GUIDES: List[Dict[str, Any]] = [
    {
        "id": "cpr",
        "category": "Emergency",
        "title": "CPR (Cardiopulmonary Resuscitation)",
        "subtitle": "For unresponsive person not breathing normally",
        "duration": "Until help arrives",
        "steps": [
            {"step": 1, "title": "Check for Response",
             "description": "Tap the person's shoulders firmly and shout 'Are you okay?' Check for normal "
                            "breathing for no more than 10 seconds."},
            {"step": 2, "title": "Call for Help",
             "description": "If no response, call 100 immediately or have someone else call. Put the phone on "
                            "speaker so you can follow instructions."},
            {"step": 3, "title": "Begin Chest Compressions",
             "description": "Place the heel of your hand on the center of the chest. Push hard and fast at least "
                            "2 inches deep at a rate of 100-120 compressions per minute.",
             "warning": "Don't stop compressions unless absolutely necessary"},
            {"step": 4, "title": "Give Rescue Breaths (if trained)",
             "description": "After 30 compressions, tilt the head back, lift the chin, and give 2 rescue "
                            "breaths. Each breath should take about 1 second and make the chest rise."},
            {"step": 5, "title": "Continue CPR",
             "description": "Repeat cycles of 30 compressions and 2 breaths until emergency services arrive or "
                            "the person starts breathing normally."},
        ],
    },
    {
        "id": "bleeding",
        "category": "Trauma",
        "title": "Severe Bleeding Control",
        "subtitle": "For wounds with heavy blood loss",
        "duration": "5-10 minutes",
        "steps": [
            {"step": 1, "title": "Apply Direct Pressure",
             "description": "Use a clean cloth, bandage, or even clothing to apply firm, steady pressure "
                            "directly on the wound."},
            {"step": 2, "title": "Elevate the Injured Area",
             "description": "If possible, raise the bleeding body part above the level of the heart to help "
                            "slow blood flow."},
            {"step": 3, "title": "Add More Material if Needed",
             "description": "If blood soaks through, add more cloth on top. Do not remove the original "
                            "material as this may disturb clotting.",
             "warning": "Never remove blood-soaked bandages"},
            {"step": 4, "title": "Apply Tourniquet if Necessary",
             "description": "For life-threatening limb bleeding, apply a tourniquet 2-3 inches above the "
                            "wound. Note the time applied."},
            {"step": 5, "title": "Keep Victim Warm",
             "description": "Cover the person with a blanket to prevent shock. Keep them calm and still until "
                            "help arrives."},
        ],
    },
    {
        "id": "burns",
        "category": "Trauma",
        "title": "Burn Treatment",
        "subtitle": "For thermal, chemical, or electrical burns",
        "duration": "10-20 minutes",
        "steps": [
            {"step": 1, "title": "Stop the Burning Process",
             "description": "Remove the person from the source of the burn. Remove any clothing or jewelry "
                            "near the burn that isn't stuck to the skin."},
            {"step": 2, "title": "Cool the Burn",
             "description": "Hold the burned area under cool (not cold) running water for at least 10-20 "
                            "minutes. This helps reduce pain and swelling.",
             "warning": "Never use ice, butter, or toothpaste on burns"},
            {"step": 3, "title": "Cover with Clean Material",
             "description": "After cooling, cover the burn loosely with a sterile, non-stick bandage or clean "
                            "cloth."},
            {"step": 4, "title": "Manage Pain",
             "description": "Over-the-counter pain relievers like ibuprofen can help. Keep the person "
                            "hydrated."},
            {"step": 5, "title": "Seek Medical Help",
             "description": "Seek immediate medical attention for burns larger than your palm, burns on "
                            "face/hands/feet, or if the burn appears white or charred."},
        ],
    },
    {
        "id": "choking",
        "category": "Emergency",
        "title": "Choking (Heimlich Maneuver)",
        "subtitle": "For adults and children over 1 year",
        "duration": "Until object is expelled",
        "steps": [
            {"step": 1, "title": "Confirm Choking",
             "description": "Ask 'Are you choking?' If the person can't speak, cough, or breathe, they need "
                            "immediate help."},
            {"step": 2, "title": "Position Yourself",
             "description": "Stand behind the person and wrap your arms around their waist. Lean them slightly "
                            "forward."},
            {"step": 3, "title": "Make a Fist",
             "description": "Place your fist just above the person's navel (belly button) with your thumb "
                            "against their stomach."},
            {"step": 4, "title": "Perform Abdominal Thrusts",
             "description": "Grasp your fist with your other hand and thrust inward and upward in a quick, "
                            "forceful motion.",
             "warning": "For pregnant women or obese individuals, perform chest thrusts instead"},
            {"step": 5, "title": "Repeat Until Successful",
             "description": "Continue thrusts until the object is expelled or the person can breathe. If they "
                            "become unconscious, begin CPR."},
        ],
    },
]


def search_guides(q: Optional[str] = None) -> List[Dict[str, Any]]:
    if not q:
        return GUIDES
    q = q.lower()
    return [g for g in GUIDES if q in g["title"].lower() or q in g["category"].lower()]


def get_guide(guide_id: str) -> Optional[Dict[str, Any]]:
    return next((g for g in GUIDES if g["id"] == guide_id), None)
