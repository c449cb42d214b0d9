"""
Seed development data: the agent login, a few leads, clients, policy
templates and policy instances.
Run: python -m scripts.seed_data  (from backend/)
"""

import asyncio
import os
from datetime import date, timedelta
from decimal import Decimal

from app.core.dates import local_today
from app.db.session import async_session, engine
from app.repositories import policy_templates as template_repository
from app.services import clients as client_service
from app.services import leads as lead_service
from app.services import policy_instances as instance_service
from app.services import policy_templates as template_service
from app.services.auth import provision_agent

AGENT = {
    "email": os.getenv("SEED_AGENT_EMAIL", "agent@example.com"),
    "password": os.getenv("SEED_AGENT_PASSWORD", "changeme123"),  # Change in production!
    "name": "Insurance Agent",
}

SEED_LEADS = [
    {"name": "Rahul Verma", "phone": "+91 98765 43210", "email": "rahul.verma@example.com",
     "insurance_interest": "Life", "priority": "Hot"},
    {"name": "Ananya Iyer", "phone": "9876501234", "insurance_interest": "Health",
     "status": "Contacted", "whatsapp_number": "919876501234"},
    {"name": "Vikram Singh", "phone": "9123456780", "insurance_interest": "Auto",
     "status": "Qualified", "priority": "Cold"},
]

SEED_CLIENTS = [
    {"client_type": "PERSONAL", "first_name": "Meera", "last_name": "Nair",
     "email": "meera.nair@example.com", "phone": "9988776655", "whatsapp_number": "919988776655",
     "city": "Kochi", "state": "Kerala"},
    {"client_type": "CORPORATE", "first_name": "", "last_name": "", "company_name": "Sunrise Textiles Pvt Ltd",
     "email": "accounts@sunrisetextiles.example.com", "phone": "02240001234", "city": "Mumbai",
     "state": "Maharashtra"},
]

SEED_TEMPLATES = [
    {"policy_number": "LIC-JA-1001", "policy_type": "Life", "provider": "LIC",
     "description": "Jeevan Anand endowment plan"},
    {"policy_number": "STAR-FH-2001", "policy_type": "Health", "provider": "Star Health",
     "description": "Family health optima"},
    {"policy_number": "ICICI-BZ-3001", "policy_type": "Business", "provider": "ICICI Lombard"},
]


async def seed():
    """Insert seed data (skips templates that already exist)."""
    async with async_session() as session:
        agent = await provision_agent(session, **AGENT)
        print(f"  Agent login: {agent.agent_email}")

        for data in SEED_LEADS:
            lead = await lead_service.create_lead(session, dict(data))
            print(f"  Created lead: {lead.name}")

        today = local_today()
        meera = await client_service.create_client(
            session, {**SEED_CLIENTS[0], "date_of_birth": date(1991, 7, 14)}
        )
        sunrise = await client_service.create_client(session, dict(SEED_CLIENTS[1]))
        print(f"  Created clients: {meera.display_name}, {sunrise.display_name}")

        templates = []
        for data in SEED_TEMPLATES:
            template = await template_repository.get_template_by_number(session, data["policy_number"])
            if template is None:
                template = await template_service.create_template(session, dict(data))
            templates.append(template)
        print(f"  Policy templates: {len(templates)}")

        holdings = [
            (meera, templates[0], Decimal("25000"), Decimal("2500"), today - timedelta(days=340), 12),
            (meera, templates[1], Decimal("18000"), Decimal("1800"), today - timedelta(days=30), 12),
            (sunrise, templates[2], Decimal("120000"), Decimal("9000"), today - timedelta(days=200), 12),
        ]
        for client, template, premium, commission, start, months in holdings:
            await instance_service.create_instance(
                session,
                client.id,
                {
                    "policy_template_id": template.id,
                    "premium_amount": premium,
                    "commission_amount": commission,
                    "start_date": start,
                    "duration_months": months,
                },
            )
        print(f"  Policy instances: {len(holdings)}")
        await session.commit()
    await engine.dispose()
    print("Seed data inserted.")


if __name__ == "__main__":
    asyncio.run(seed())
