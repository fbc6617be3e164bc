from sqlalchemy import Column, DateTime, Integer, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()

SCRAPE_STATE_ID = 1
INITIAL_CATEGORY_INDEX = -1


class Story(Base):
    __tablename__ = 'stories'

    url = Column(Text, primary_key=True)
    title = Column(Text, nullable=False)
    synopsis = Column(Text, nullable=False, default='')
    # Comma-joined lowercase tags, see persistence.serialize_categories
    categories = Column(Text, nullable=False, default='')
    last_scraped_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<Story(url='{self.url}', title='{self.title[:30]}...')>"


class ScrapeState(Base):
    __tablename__ = 'scrape_state'

    id = Column(Integer, primary_key=True, default=SCRAPE_STATE_ID)
    last_scraped_category_index = Column(Integer, nullable=False, default=INITIAL_CATEGORY_INDEX)

    def __repr__(self):
        return f"<ScrapeState(id={self.id}, last_scraped_category_index={self.last_scraped_category_index})>"
